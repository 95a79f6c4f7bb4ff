"""Session exchange for timesync-testkit.

Contains:
- listen_for_replies: Listener loop feeding PONGs to a ReplyHandler
- client_exchange: Run driver and listener concurrently, then aggregate
- server_exchange: Responder loop answering PINGs with the local clock
"""

import logging
import threading
import time
from collections.abc import Callable

from common.clock import Clock, SystemClock
from common.config import SessionConfig
from common.encoding import CrcError, EncodingError, Ping, Pong, TransportError, pong_for
from common.io import drain_input, recv_message, send_pong
from common.protocol import LOG_PROGRESS_INTERVAL, TRACE, SerialPort
from session.buffer import RoundBuffer
from session.driver import RoundDriver
from session.handler import ReplyHandler
from session.result import ResponderStats, SessionError, SessionSummary, aggregate_rounds
from session.sink import PrintSink, ResultSink

logger = logging.getLogger(__name__)

# Bound on waiting for the listener after it has been told to stop
LISTENER_JOIN_TIMEOUT_S = 5.0


def listen_for_replies(
    port: SerialPort,
    handler: ReplyHandler,
    stop: threading.Event,
    on_failure: Callable[[OSError], None] | None = None,
) -> int:
    """Feed inbound PONGs to handler until stop is set.

    Framing and encoding errors are logged and skipped. A read failure on
    the port (OSError, including serial.SerialException) ends the loop and
    is passed to on_failure. Returns the number of PONGs handled.
    """
    handled = 0
    logger.debug("Listener: started")

    while not stop.is_set():
        try:
            msg = recv_message(port)
        except CrcError as e:
            logger.warning(f"Listener: {e}, dropping frame")
            continue
        except TransportError:
            continue  # read timeout, check stop flag
        except EncodingError as e:
            logger.warning(f"Listener: undecodable message ({e})")
            continue
        except OSError as e:
            logger.error(f"Listener: read failed, stopping ({e})")
            if on_failure is not None:
                on_failure(e)
            break

        match msg:
            case Pong():
                handler.handle(msg)
                handled += 1
            case Ping():
                logger.debug(f"Listener: ignoring PING {msg.sequence_number} (is the peer a client?)")

    logger.debug(f"Listener: stopped after {handled} replies")
    return handled


def client_exchange(
    port: SerialPort,
    config: SessionConfig,
    clock: Clock | None = None,
    sink: ResultSink | None = None,
    stop: threading.Event | None = None,
) -> SessionSummary:
    """Measure clock offset and ping-pong time against the peer on port.

    The driver runs on the calling thread and the listener on a background
    thread. Once the driver finishes (max_rounds reached or stop set), the
    listener gets up to config.settle_s for in-flight replies, is stopped
    and joined, and only then are the buffered rounds aggregated.

    Args:
        port: Serial port connected to a responder.
        config: Driver and correlation settings.
        clock: Local timestamp source (system wall clock by default).
        sink: Receiver of per-round results and the summary (prints by default).
        stop: Cancellation event; setting it ends the driver loop. It is also
            set when the listener hits a read failure.

    Returns:
        SessionSummary with per-round and aggregate statistics.
    """
    clock = clock or SystemClock()
    sink = sink or PrintSink()
    stop = stop or threading.Event()

    buffer = RoundBuffer()
    handler = ReplyHandler(buffer, clock, sink, accept_unmatched=config.accept_unmatched)
    driver = RoundDriver(port, buffer, clock, config)

    drain_input(port)

    listener_failures: list[OSError] = []

    def on_listener_failure(e: OSError) -> None:
        listener_failures.append(e)
        stop.set()

    listener_stop = threading.Event()
    listener = threading.Thread(
        target=listen_for_replies,
        args=(port, handler, listener_stop, on_listener_failure),
        name="reply-listener",
        daemon=True,
    )
    listener.start()

    start = time.monotonic()
    error: Exception | None = None
    try:
        driver.run(stop)
    except OSError as e:
        logger.error(f"Client: transport failure during session: {e}")
        error = SessionError(f"Transport failure after {driver.sent} rounds: {e}")
    finally:
        if error is None and not listener_failures and buffer.pending_count and config.settle_s > 0:
            logger.info(f"Client: waiting up to {config.settle_s}s for {buffer.pending_count} replies")
            buffer.wait_settled(config.settle_s)
        listener_stop.set()
        listener.join(timeout=LISTENER_JOIN_TIMEOUT_S)
        if listener.is_alive():
            logger.warning("Client: listener did not stop in time")

    if error is None and listener_failures:
        error = SessionError(f"Transport failure while reading replies: {listener_failures[0]}")

    buffer.expire_all()
    elapsed_s = time.monotonic() - start

    summary = aggregate_rounds(
        buffer.records(),
        sent=driver.sent,
        lost=buffer.lost,
        rejected=buffer.rejected,
        elapsed_s=elapsed_s,
        error=error,
    )
    logger.info(
        f"Client: session complete ({summary.sent} sent, {summary.received} recorded, "
        f"{summary.lost} lost, {summary.rejected} rejected)"
    )
    sink.publish_summary(summary)
    return summary


def server_exchange(
    port: SerialPort,
    clock: Clock,
    stop: threading.Event,
    simulated_delay_s: float = 0.0,
) -> ResponderStats:
    """Answer PINGs until stop is set.

    Each PONG echoes the PING's sequence number and outgoing_stamp and
    carries pong_stamp, read from clock as soon as the PING is decoded.
    simulated_delay_s adds a one-way delay on each leg (loopback testing).
    """
    stats = ResponderStats()
    start = time.monotonic()
    logger.info("Server: answering PINGs")

    while not stop.is_set():
        try:
            msg = recv_message(port)
        except CrcError as e:
            stats.errors += 1
            logger.warning(f"Server: {e}, dropping frame")
            continue
        except TransportError:
            continue
        except EncodingError as e:
            stats.errors += 1
            logger.warning(f"Server: undecodable message ({e})")
            continue

        if not isinstance(msg, Ping):
            stats.ignored += 1
            logger.debug(f"Server: ignoring PONG {msg.sequence_number} (is the peer a server?)")
            continue

        if simulated_delay_s > 0 and clock.wait(stop, simulated_delay_s):
            break
        pong = pong_for(msg, clock.now_ns())
        if simulated_delay_s > 0 and clock.wait(stop, simulated_delay_s):
            break

        send_pong(port, pong)
        stats.answered += 1
        logger.log(TRACE, f"Server: answered PING {msg.sequence_number}")
        if stats.answered % LOG_PROGRESS_INTERVAL == 0:
            logger.debug(f"Server: progress {stats.answered} PINGs answered")

    stats.elapsed_s = time.monotonic() - start
    logger.info(f"Server: stopped ({stats.answered} answered, {stats.errors} errors)")
    return stats
