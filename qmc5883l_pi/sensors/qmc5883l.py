"""QMC5883L 3-axis magnetometer driver.

Register map and bit encodings follow the QMC5883L datasheet 1.0.

The driver talks to the chip through a bus object bound to the device address
(see :class:`qmc5883l_pi.communication.i2c_bus.I2CBus`). It does not open or
close that bus and performs no locking; callers sharing a bus must serialize
calls, since the status read and the axis reads of one sample belong together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

from qmc5883l_pi.communication.i2c_bus import BusError, DEFAULT_ADDRESS, DEFAULT_BUS

logger = logging.getLogger('qmc5883l')

# Output data registers (LSB of each little-endian pair)
REG_XOUT_LSB = 0x00
REG_YOUT_LSB = 0x02
REG_ZOUT_LSB = 0x04
REG_TOUT_LSB = 0x07  # temperature

# Status register 1
REG_STATUS1 = 0x06
STAT_DRDY = 0x01  # data ready
STAT_OVL = 0x02   # overflow
STAT_DOR = 0x04   # data skipped for reading

# Control register 1
REG_CONTROL1 = 0x09

# Control register 2
REG_CONTROL2 = 0x0A
INT_ENB = 0x01   # interrupt pin enabling
POL_PNT = 0x40   # pointer roll-over
SOFT_RST = 0x80  # soft reset

REG_RST_PERIOD = 0x0B  # SET/RESET period
REG_CHIP_ID = 0x0D

RST_PERIOD_VALUE = 0x01


class Mode(IntEnum):
    STANDBY = 0x00
    CONTINUOUS = 0x01


class OutputDataRate(IntEnum):
    ODR_10HZ = 0x00
    ODR_50HZ = 0x04
    ODR_100HZ = 0x08
    ODR_200HZ = 0x0C


class Range(IntEnum):
    RNG_2G = 0x00  # magnetic-clean environments
    RNG_8G = 0x10  # strong magnetic fields


class Oversampling(IntEnum):
    OSR_512 = 0x00  # less noise, more power
    OSR_256 = 0x40
    OSR_128 = 0x80
    OSR_64 = 0xC0   # more noise, less power


class ReadOutcome(Enum):
    OVERFLOW = 'overflow'
    READY = 'ready'
    SKIPPED = 'skipped'
    NONE_READY = 'none_ready'


class InitializationError(Exception):
    """Reset or default configuration failed; the driver is unusable."""

    def __init__(self, message: str, bus_error: BusError):
        super().__init__(message)
        self.bus_error = bus_error


class SampleError(Exception):
    """A read that did not produce a sample."""


class SensorOverflowError(SampleError):
    def __init__(self, range_hint: Optional[str] = None):
        msg = "Magnetic sensor overflow."
        if range_hint:
            msg += " " + range_hint
        super().__init__(msg)
        self.range_hint = range_hint


class DataSkippedError(SampleError):
    def __init__(self):
        super().__init__("Data skipped for reading")


class SampleBusError(SampleError):
    """Bus failure in the middle of a sample read.

    ``partial`` holds whatever axes were read before the failure, with the
    remaining axes left at 0. Only complete samples are meaningful.
    """

    def __init__(self, bus_error: BusError, partial: Optional["RawSample"] = None):
        super().__init__(str(bus_error))
        self.bus_error = bus_error
        self.partial = partial if partial is not None else RawSample(0, 0, 0)


@dataclass
class DriverConfig:
    bus_id: int = DEFAULT_BUS
    address: int = DEFAULT_ADDRESS
    mode: Mode = Mode.CONTINUOUS
    output_data_rate: OutputDataRate = OutputDataRate.ODR_10HZ
    range: Range = Range.RNG_2G
    oversampling: Oversampling = Oversampling.OSR_512

    def control1(self) -> int:
        return pack_control1(self.mode, self.output_data_rate, self.range, self.oversampling)


@dataclass(frozen=True)
class RawSample:
    x: int
    y: int
    z: int

    def as_tuple(self) -> tuple[int, int, int]:
        return self.x, self.y, self.z


@dataclass(frozen=True)
class StatusFlags:
    data_ready: bool
    overflow: bool
    data_skipped: bool

    @classmethod
    def from_byte(cls, status: int) -> "StatusFlags":
        return cls(
            data_ready=bool(status & STAT_DRDY),
            overflow=bool(status & STAT_OVL),
            data_skipped=bool(status & STAT_DOR),
        )

    @property
    def outcome(self) -> ReadOutcome:
        """Resolve the flags by priority: overflow, ready, skipped, none.

        The bits are not mutually exclusive in hardware.
        """
        if self.overflow:
            return ReadOutcome.OVERFLOW
        if self.data_ready:
            return ReadOutcome.READY
        if self.data_skipped:
            return ReadOutcome.SKIPPED
        return ReadOutcome.NONE_READY


def pack_control1(mode: int, odr: int, rng: int, osr: int) -> int:
    return (int(mode) | int(odr) | int(rng) | int(osr)) & 0xFF


def complement2(val: int) -> int:
    """Two's complement of an unsigned 16-bit register value."""
    val &= 0xFFFF
    if val >= 0x8000:
        return val - 0x10000
    return val


def to_unsigned16(val: int) -> int:
    return val & 0xFFFF


class MagnetometerDriver:
    """QMC5883L chip handle.

    Construction writes the SET/RESET period, soft-resets the chip and applies
    the default configuration (continuous, 10 Hz, 2 G, OSR 512).

    Raises:
        InitializationError: any bus write of that sequence failed.
    """

    def __init__(self, bus, bus_id: int = DEFAULT_BUS, address: int = DEFAULT_ADDRESS):
        if not bus_id:
            bus_id = DEFAULT_BUS
        if not address:
            address = DEFAULT_ADDRESS
        self.bus = bus
        self.config = DriverConfig(bus_id=bus_id, address=address)

        try:
            self.bus.write_byte_register(REG_RST_PERIOD, RST_PERIOD_VALUE)
            self.bus.write_byte_register(REG_CONTROL2, SOFT_RST)
            logger.debug("QMC5883L at 0x%02X reset", address)
            defaults = DriverConfig()
            self.configure(
                defaults.mode,
                defaults.output_data_rate,
                defaults.range,
                defaults.oversampling,
            )
        except BusError as e:
            logger.error(f"Failed to initialize QMC5883L at 0x{address:02X}: {e}")
            raise InitializationError(
                f"QMC5883L initialization failed at 0x{address:02X}: {e}", e
            ) from e

    @property
    def range(self) -> Range:
        return self.config.range

    def configure(self, mode: Mode, output_data_rate: OutputDataRate,
                  range: Range, oversampling: Oversampling) -> None:
        """Write control register 1.

        The stored configuration changes only once the write succeeded, so it
        always reflects what the chip is running.
        """
        mode = Mode(mode)
        output_data_rate = OutputDataRate(output_data_rate)
        range = Range(range)
        oversampling = Oversampling(oversampling)
        value = pack_control1(mode, output_data_rate, range, oversampling)
        self.bus.write_byte_register(REG_CONTROL1, value)
        self.config.mode = mode
        self.config.output_data_rate = output_data_rate
        self.config.range = range
        self.config.oversampling = oversampling
        logger.debug("QMC5883L CTRL1(0x09)=0x%02X", value)

    def read_register(self, reg: int) -> int:
        return self.bus.read_byte_register(reg)

    def read_word(self, reg: int) -> int:
        """Read a signed value stored as LSB, MSB."""
        return complement2(self.bus.read_word_register_le(reg))

    def read_chip_id(self) -> int:
        return self.read_register(REG_CHIP_ID)

    def read_status(self) -> StatusFlags:
        return StatusFlags.from_byte(self.bus.read_byte_register(REG_STATUS1))

    def read_sample(self) -> RawSample:
        """Read the three axes if the chip has new data.

        Returns an all-zero sample when no status flag is set (no update since
        the last read).

        Raises:
            SensorOverflowError: field exceeds the current range.
            DataSkippedError: the chip dropped a measurement before it was read.
            SampleBusError: a bus transaction failed.
        """
        try:
            status = self.read_status()
        except BusError as e:
            raise SampleBusError(e) from e

        outcome = status.outcome
        if outcome is ReadOutcome.OVERFLOW:
            hint = None
            if self.config.range == Range.RNG_2G:
                hint = "Consider switching to the 8 Gauss output range."
            logger.warning("QMC5883L overflow (range=%s)", self.config.range.name)
            raise SensorOverflowError(hint)

        if outcome is ReadOutcome.READY:
            axes = [0, 0, 0]
            for i, reg in enumerate((REG_XOUT_LSB, REG_YOUT_LSB, REG_ZOUT_LSB)):
                try:
                    axes[i] = self.read_word(reg)
                except BusError as e:
                    raise SampleBusError(e, RawSample(*axes)) from e
            return RawSample(*axes)

        if outcome is ReadOutcome.SKIPPED:
            # Reading the temperature register clears the DOR state.
            try:
                self.bus.read_word_register_le(REG_TOUT_LSB)
            except BusError as e:
                logger.debug("Ignoring temperature read failure after data skip: %s", e)
            raise DataSkippedError()

        return RawSample(0, 0, 0)
