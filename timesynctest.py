#!/usr/bin/env python3
"""Clock offset and latency test tool for serial links."""

import argparse
import logging
import sys

from client.runner import ExitCode, run_client, run_loopback
from common.config import ConfigError, Role, SessionConfig
from server.runner import run_server

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200


def _add_session_args(parser: argparse.ArgumentParser, defaults: SessionConfig) -> None:
    """Add baudrate and session arguments to a parser."""
    parser.add_argument(
        "-b",
        "--baudrate",
        type=int,
        default=DEFAULT_BAUDRATE,
        help=f"Baud rate (default: {DEFAULT_BAUDRATE})",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=defaults.interval_s,
        help=f"Seconds between PINGs (default: {defaults.interval_s})",
    )
    parser.add_argument(
        "-n",
        "--rounds",
        type=int,
        default=defaults.max_rounds,
        help=f"Number of rounds, 0 = until Ctrl-C (default: {defaults.max_rounds})",
    )
    parser.add_argument(
        "--reply-timeout",
        type=float,
        default=defaults.reply_timeout_s,
        help=f"Seconds before an unanswered PING counts as lost (default: {defaults.reply_timeout_s})",
    )
    parser.add_argument(
        "--settle",
        type=float,
        default=defaults.settle_s,
        help=f"Seconds to wait for in-flight replies at the end (default: {defaults.settle_s})",
    )
    parser.add_argument(
        "--accept-unmatched",
        action="store_true",
        help="Record replies that match no pending PING (flagged) instead of rejecting them",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )


def _session_config(args: argparse.Namespace) -> SessionConfig:
    return SessionConfig(
        interval_s=args.interval,
        max_rounds=args.rounds,
        reply_timeout_s=args.reply_timeout,
        settle_s=args.settle,
        accept_unmatched=args.accept_unmatched,
    )


def main() -> int:
    try:
        defaults = SessionConfig.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return ExitCode.CONFIG_ERROR

    parser = argparse.ArgumentParser(
        description="Measure clock offset and ping-pong latency to a peer over a serial link",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s loopback -n 5 --offset-ms 50     Simulated peer with a +50ms clock
  %(prog)s -d /dev/ttyAMA4 -r server        Answer PINGs (run on the peer)
  %(prog)s -d /dev/ttyUSB0 -r client -n 30  Measure 30 rounds against the peer
""",
    )

    subparsers = parser.add_subparsers(dest="mode")

    loopback_parser = subparsers.add_parser(
        "loopback", help="Run against a simulated peer on a pty pair"
    )
    _add_session_args(loopback_parser, defaults)
    loopback_parser.add_argument(
        "--offset-ms",
        type=float,
        default=0.0,
        help="Simulated peer clock offset in ms (default: 0)",
    )
    loopback_parser.add_argument(
        "--delay-ms",
        type=float,
        default=0.0,
        help="Simulated one-way delay in ms (default: 0)",
    )

    parser.add_argument(
        "-d", "--device", type=str, help="Serial device path (e.g., /dev/ttyAMA4)"
    )
    parser.add_argument(
        "-f",
        "--flow-control",
        type=str,
        choices=["none", "crtscts"],
        default="crtscts",
        help="Flow control (default: crtscts)",
    )
    parser.add_argument(
        "-r",
        "--role",
        type=str,
        choices=[r.value for r in Role],
        default=Role.CLIENT.value,
        help="client measures, server answers (default: client)",
    )
    parser.add_argument(
        "--no-latency-fix",
        action="store_true",
        help="Do not lower the FTDI latency timer",
    )
    _add_session_args(parser, defaults)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _session_config(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return ExitCode.CONFIG_ERROR

    if args.mode == "loopback":
        return run_loopback(args.baudrate, config, offset_ms=args.offset_ms, delay_ms=args.delay_ms)

    if not args.device:
        parser.print_help()
        return 2

    rtscts = args.flow_control == "crtscts"
    if Role(args.role) == Role.SERVER:
        return run_server(args.device, args.baudrate, rtscts, args.no_latency_fix)
    return run_client(args.device, args.baudrate, rtscts, config, args.no_latency_fix)


if __name__ == "__main__":
    sys.exit(main())
