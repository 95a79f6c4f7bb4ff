"""Server runner for timesync-testkit.

Contains run_server() which answers PINGs on a serial port until SIGINT
or SIGTERM, then prints a responder report.
"""

import logging
import signal
import threading
from types import FrameType

from common.clock import SystemClock
from common.device import configure_ftdi_latency_timer, open_serial
from common.io import drain_input
from session.exchange import server_exchange
from session.report import ResponderReport

logger = logging.getLogger(__name__)


def run_server(
    device: str,
    baudrate: int,
    rtscts: bool,
    no_latency_fix: bool = False,
) -> int:
    """Run the responder until signalled. Returns 0 unless the port fails.

    The server:
    - Stamps each PING with its own wall clock and answers with a PONG
    - Handles SIGINT/SIGTERM for graceful exit
    """
    stop = threading.Event()

    def handle_signal(_sig: int, _frame: FrameType | None) -> None:
        logger.info("Signal received - shutting down")
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    if not no_latency_fix:
        configure_ftdi_latency_timer(device)

    try:
        ser = open_serial(device, baudrate, rtscts)
    except Exception as e:
        logger.error(f"Failed to open serial port: {e}")
        return 1

    try:
        logger.info(f"Server started on {device}, waiting for PINGs...")
        drain_input(ser)
        try:
            stats = server_exchange(ser, SystemClock(), stop)
        except OSError as e:
            logger.error(f"Serial error: {e}")
            return 1
        ResponderReport(stats=stats).print()
    finally:
        ser.close()
        logger.info(f"Closed {device}")

    logger.info("Server shutdown complete")
    return 0
