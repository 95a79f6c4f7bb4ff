"""Serial device setup for timesync-testkit.

Contains:
- configure_ftdi_latency_timer: Lower the FTDI latency timer so USB
  buffering does not inflate measured round trips
- log_device_info: Log information about a serial device
- open_serial: Open and configure a serial port
"""

import logging
import os

import serial
import serial.tools.list_ports

logger = logging.getLogger(__name__)

FTDI_LATENCY_TIMER_TARGET = 1

# Read timeout: bounds how long the listener blocks before re-checking its stop flag
SERIAL_READ_TIMEOUT_S = 0.1
SERIAL_WRITE_TIMEOUT_S = 1.0


def _latency_timer_path(device: str) -> str | None:
    device_name = os.path.basename(os.path.realpath(device))
    if not device_name.startswith("ttyUSB"):
        return None
    return f"/sys/bus/usb-serial/devices/{device_name}/latency_timer"


def configure_ftdi_latency_timer(device: str) -> bool:
    """Set the FTDI latency timer to 1ms. Returns True if it is now 1ms.

    The default 16ms timer holds small frames in the adapter and shows up
    directly in ping-pong times.
    """
    sysfs_path = _latency_timer_path(device)
    if sysfs_path is None:
        logger.debug(f"Latency timer not applicable to {device}")
        return False
    if not os.path.exists(sysfs_path):
        logger.warning(f"Cannot configure latency timer: {sysfs_path} not found")
        return False

    try:
        with open(sysfs_path, "r") as f:
            current_value = int(f.read().strip())
        if current_value == FTDI_LATENCY_TIMER_TARGET:
            logger.debug(f"Latency timer already {FTDI_LATENCY_TIMER_TARGET}ms")
            return True

        with open(sysfs_path, "w") as f:
            f.write(str(FTDI_LATENCY_TIMER_TARGET))
        with open(sysfs_path, "r") as f:
            new_value = int(f.read().strip())
    except PermissionError:
        logger.warning("Cannot configure latency timer: permission denied (run with sudo)")
        return False
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to configure latency timer: {e}")
        return False

    if new_value != FTDI_LATENCY_TIMER_TARGET:
        logger.warning(f"Latency timer still {new_value}ms after writing {FTDI_LATENCY_TIMER_TARGET}")
        return False

    logger.info(
        f"Latency timer lowered from {current_value}ms to {FTDI_LATENCY_TIMER_TARGET}ms "
        "(round trips would otherwise include USB buffering)"
    )
    return True


def log_device_info(device: str) -> None:
    """Log information about a serial device."""
    real_path = os.path.realpath(device)
    if real_path.startswith("/dev/pts/"):
        logger.info(f"Device: {device} -> {real_path} (pty)")
        return

    ports = [p for p in serial.tools.list_ports.comports() if p.device == device]
    if not ports:
        logger.info(f"Device: {device} (not in port list)")
        return

    info = ports[0]
    logger.info(f"Device: {info.device} ({info.description})")
    if info.vid is not None:
        logger.info(f"VID:PID: {info.vid:04x}:{info.pid:04x}")


def open_serial(
    device: str,
    baudrate: int,
    rtscts: bool = False,
) -> serial.Serial:
    """Open and configure a serial port for the exchange."""
    log_device_info(device)
    ser = serial.Serial(
        port=device,
        baudrate=baudrate,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=rtscts,
        timeout=SERIAL_READ_TIMEOUT_S,
        write_timeout=SERIAL_WRITE_TIMEOUT_S,
    )
    ser.reset_input_buffer()
    ser.reset_output_buffer()
    logger.debug(f"Serial port: baudrate={ser.baudrate}, rtscts={ser.rtscts}")
    return ser
