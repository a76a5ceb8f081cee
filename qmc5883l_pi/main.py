"""
Sampling Loop for Raspberry Pi
QMC5883L Magnetometer Reader

Usage examples:
  python3 -m qmc5883l_pi.main
  python3 -m qmc5883l_pi.main --bus 1 --addr 0x0d --interval 0.2 --verbose
  python3 -m qmc5883l_pi.main --dump
"""

import argparse
import json
import logging
import os
import signal
import sys
from dataclasses import dataclass
from threading import Event
from typing import Callable, Optional

from qmc5883l_pi.communication.i2c_bus import BusError, I2CBus
from qmc5883l_pi.sensors.qmc5883l import (
    InitializationError,
    MagnetometerDriver,
    Mode,
    OutputDataRate,
    Oversampling,
    Range,
    SampleError,
)
from qmc5883l_pi.sensors.qmc5883l_diag import describe, dump_registers, fmt, parse_addr
from qmc5883l_pi.utils.data_formatter import DataFormatter
from qmc5883l_pi.utils.logger import setup_logger

logger = logging.getLogger('main')

ENV_CONFIG_PATH = 'QMC5883L_CONFIG_PATH'
ENV_BUS = 'QMC5883L_BUS'
ENV_ADDRESS = 'QMC5883L_ADDRESS'

DEFAULT_CONFIG = {
    "device_id": "qmc5883l",
    "i2c": {
        "bus": 1,
        "address": 0x0D
    },
    "mode": "continuous",
    "output_data_rate": 200,
    "range": 8,
    "oversampling": 512,
    "interval": 0.1,
    "log_level": "INFO",
    "log_file": "qmc5883l.log"
}

MODES = {
    "standby": Mode.STANDBY,
    "continuous": Mode.CONTINUOUS,
}
DATA_RATES = {
    10: OutputDataRate.ODR_10HZ,
    50: OutputDataRate.ODR_50HZ,
    100: OutputDataRate.ODR_100HZ,
    200: OutputDataRate.ODR_200HZ,
}
RANGES = {
    2: Range.RNG_2G,
    8: Range.RNG_8G,
}
OVERSAMPLING = {
    512: Oversampling.OSR_512,
    256: Oversampling.OSR_256,
    128: Oversampling.OSR_128,
    64: Oversampling.OSR_64,
}

# Global shutdown event
shutdown_event = Event()


@dataclass
class SamplerSettings:
    interval: float = 0.1
    count: Optional[int] = None
    verbose: bool = False


def _load_config(path: Optional[str] = None) -> tuple[dict, str]:
    """Load reader configuration.

    Priority:
      1) explicit path (--config)
      2) $QMC5883L_CONFIG_PATH (if set)
      3) config.json next to this file (qmc5883l_pi/config.json)
      4) ./config.json in current working directory
    Values missing from the file fall back to DEFAULT_CONFIG.
    """
    candidates = []
    if path:
        candidates.append(path)
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        candidates.append(env_path)
    candidates.append(os.path.join(os.path.dirname(__file__), 'config.json'))
    candidates.append(os.path.join(os.getcwd(), 'config.json'))

    for candidate in candidates:
        try:
            with open(candidate, 'r') as f:
                loaded = json.load(f)
        except FileNotFoundError:
            continue
        config = dict(DEFAULT_CONFIG)
        config.update(loaded)
        config['i2c'] = {**DEFAULT_CONFIG['i2c'], **loaded.get('i2c', {})}
        return config, candidate

    return dict(DEFAULT_CONFIG, i2c=dict(DEFAULT_CONFIG['i2c'])), "<default>"


def _lookup(table: dict, key, field: str):
    if isinstance(key, str):
        key = key.strip().lower()
        if key.isdigit():
            key = int(key)
    try:
        return table[key]
    except KeyError:
        raise ValueError(
            f"Invalid {field} {key!r}; expected one of {', '.join(str(k) for k in table)}"
        ) from None


def driver_mode(config: dict) -> tuple[Mode, OutputDataRate, Range, Oversampling]:
    """Translate config values into control register 1 fields."""
    return (
        _lookup(MODES, config.get('mode', 'continuous'), 'mode'),
        _lookup(DATA_RATES, config.get('output_data_rate', 200), 'output_data_rate'),
        _lookup(RANGES, config.get('range', 8), 'range'),
        _lookup(OVERSAMPLING, config.get('oversampling', 512), 'oversampling'),
    )


def _env_default(env: str) -> Optional[str]:
    # argparse applies the option's type= to string defaults, so a bad
    # value is reported like a bad flag
    value = os.environ.get(env)
    if value is None or not value.strip():
        return None
    return value


def _config_int(value, field: str) -> int:
    """Integer config value; strings may be 0x.. hex or decimal."""
    try:
        if isinstance(value, str):
            return parse_addr(value)
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {field} {value!r}") from None


def _log_level(value) -> str:
    name = str(value).strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ValueError(f"Invalid log_level {value!r}")
    return name


def run_sampler(driver: MagnetometerDriver, settings: SamplerSettings, stop_event: Event,
                sink: Optional[Callable[[dict], None]] = None, device_id: str = 'qmc5883l') -> int:
    """Poll the driver until stopped or ``settings.count`` reads were made.

    Returns:
        int: Number of reads that produced a sample
    """
    logger.info("Starting sampling loop (interval %.3fs)...", settings.interval)
    if settings.verbose:
        logger.debug("Driver config: %s", driver.config)

    taken = 0
    ok = 0
    while not stop_event.is_set():
        sample = None
        error = None
        try:
            sample = driver.read_sample()
            ok += 1
        except SampleError as e:
            error = e

        record = DataFormatter.format_sample(sample, error, device_id)
        line = DataFormatter.format_log_line(record)
        if error is None:
            logger.info(line)
        else:
            logger.warning(line)
        if sink:
            sink(record)

        taken += 1
        if settings.count is not None and taken >= settings.count:
            break

        # Wait before next reading
        stop_event.wait(settings.interval)

    logger.info("Sampling loop stopped after %d reads (%d samples)", taken, ok)
    return ok


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Read raw samples from a QMC5883L magnetometer")
    ap.add_argument("--config", default=None, help="JSON config file")
    ap.add_argument("--bus", type=int, default=_env_default(ENV_BUS),
                    help=f"I2C bus number (env {ENV_BUS})")
    ap.add_argument("--addr", type=parse_addr, default=_env_default(ENV_ADDRESS),
                    help=f"I2C device address (env {ENV_ADDRESS})")
    ap.add_argument("--interval", type=float, default=None, help="seconds between reads")
    ap.add_argument("--count", type=int, default=None, help="stop after N reads")
    ap.add_argument("--verbose", action="store_true", help="provide more debugging output")
    ap.add_argument("--dump", action="store_true", help="print registers 0x00..0x0D and exit")
    return ap


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}, initiating shutdown...")
    shutdown_event.set()


def main(argv=None, bus_factory=I2CBus):
    """Main entry point"""
    args = build_arg_parser().parse_args(argv)
    config, config_path = _load_config(args.config)

    level = 'INFO'
    config_error = None
    try:
        level = 'DEBUG' if args.verbose else _log_level(config.get('log_level', 'INFO'))
        bus_id = args.bus if args.bus is not None else _config_int(config['i2c']['bus'], 'i2c.bus')
        address = args.addr if args.addr is not None else _config_int(config['i2c']['address'], 'i2c.address')
        mode = driver_mode(config)
        interval = args.interval
        if interval is None:
            interval = float(config.get('interval', 0.1))
    except (TypeError, ValueError) as e:
        config_error = e

    setup_logger('', level, config.get('log_file'))
    logger.info("Loaded config from %s", config_path)
    if config_error is not None:
        logger.error(f"Bad configuration: {config_error}")
        return 2

    settings = SamplerSettings(
        interval=interval,
        count=args.count,
        verbose=args.verbose,
    )

    shutdown_event.clear()
    previous_handlers = {
        sig: signal.signal(sig, signal_handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        with bus_factory(bus_id, address) as bus:
            if args.dump:
                vals = dump_registers(bus)
                print(f"=== QMC5883L bus {bus_id} addr 0x{address:02X} ===")
                print("regs 0x00..0x0D:")
                print(" ", fmt(vals))
                print(describe(vals))
                return 0

            driver = MagnetometerDriver(bus, bus_id, address)
            driver.configure(*mode)
            logger.info(
                "QMC5883L ready on bus %d at 0x%02X (%s, %s, %s, %s)",
                bus_id, address, *(m.name for m in mode),
            )
            run_sampler(driver, settings, shutdown_event, device_id=config.get('device_id', 'qmc5883l'))
    except InitializationError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    except BusError as e:
        logger.error(f"I2C error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        for sig, handler in previous_handlers.items():
            if handler is not None:
                signal.signal(sig, handler)

    logger.info("Program terminated")
    return 0


if __name__ == '__main__':
    sys.exit(main())
