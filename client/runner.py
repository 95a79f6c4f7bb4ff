"""Client runner for timesync-testkit.

Contains run_client() and run_loopback(), which run a measurement session
and return an exit code based on the result.
"""

import logging
import signal
import threading
from enum import IntEnum
from types import FrameType

from common.config import SessionConfig
from common.device import configure_ftdi_latency_timer, open_serial
from common.protocol import SerialPort
from server.loopback import LoopbackPeer
from session.exchange import client_exchange
from session.report import ResponderReport
from session.result import SessionSummary
from session.sink import PrintSink

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """Exit codes for client operations."""

    SUCCESS = 0  # Session complete, no anomalies
    TRANSPORT_FAILED = 1  # Port could not be opened or failed mid-session
    NO_DATA = 2  # Session ran but no rounds were recorded
    ANOMALIES = 3  # Clock anomalies or unmatched replies occurred
    CONFIG_ERROR = 4  # Invalid configuration


def exit_code_for(summary: SessionSummary) -> ExitCode:
    """Map a session summary to an exit code."""
    if not summary.success:
        return ExitCode.TRANSPORT_FAILED
    if summary.received == 0:
        return ExitCode.NO_DATA
    if summary.clock_anomalies or summary.unmatched or summary.rejected:
        return ExitCode.ANOMALIES
    return ExitCode.SUCCESS


def _install_stop_handler() -> threading.Event:
    """Route SIGINT/SIGTERM to a cancellation event for the driver."""
    stop = threading.Event()

    def handle_signal(_sig: int, _frame: FrameType | None) -> None:
        logger.info("Signal received - stopping after the current round")
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    return stop


def _run_session(port: SerialPort, config: SessionConfig) -> ExitCode:
    stop = _install_stop_handler()
    summary = client_exchange(port, config, sink=PrintSink(), stop=stop)
    code = exit_code_for(summary)
    if code != ExitCode.SUCCESS:
        logger.warning(f"Session finished with {code.name}")
    return code


def run_client(
    device: str,
    baudrate: int,
    rtscts: bool,
    config: SessionConfig,
    no_latency_fix: bool = False,
) -> int:
    """Run client: measurement session against a server. Returns exit code.

    The client:
    - Sends a PING every config.interval_s, after one interval of warmup
    - Records each PONG and prints its offset and ping-pong time
    - Stops after config.max_rounds, or on SIGINT/SIGTERM when unbounded
    - Prints the session report
    """
    if not no_latency_fix:
        configure_ftdi_latency_timer(device)

    try:
        ser = open_serial(device, baudrate, rtscts)
    except Exception as e:
        logger.error(f"Failed to open serial port: {e}")
        return ExitCode.TRANSPORT_FAILED

    try:
        logger.info(f"Client: measuring against peer on {device}")
        return _run_session(ser, config)
    finally:
        ser.close()
        logger.info(f"Closed {device}")


def run_loopback(
    baudrate: int,
    config: SessionConfig,
    offset_ms: float = 0.0,
    delay_ms: float = 0.0,
) -> int:
    """Run a session against a simulated peer on a pty pair. Returns exit code."""
    try:
        peer = LoopbackPeer(baudrate, offset_ms=offset_ms, delay_ms=delay_ms)
    except (OSError, RuntimeError) as e:
        logger.error(f"Failed to create loopback peer: {e}")
        return ExitCode.TRANSPORT_FAILED

    try:
        return _run_session(peer.port, config)
    finally:
        peer.close()
        ResponderReport(stats=peer.stats).print()
