"""I2C register transport for a single device on a Raspberry Pi bus.

Thin wrapper around smbus2 that binds one ``(bus_id, address)`` pair and turns
the ``OSError`` raised by the kernel I2C layer (NACK, timeout, missing device)
into :class:`BusError`.
"""

from __future__ import annotations

import logging
from typing import Optional

from smbus2 import SMBus

logger = logging.getLogger('i2c_bus')

DEFAULT_BUS = 1
DEFAULT_ADDRESS = 0x0D


class BusError(Exception):
    """Transport level I2C failure."""

    def __init__(self, message: str, register: Optional[int] = None,
                 address: Optional[int] = None, errno: Optional[int] = None):
        super().__init__(message)
        self.register = register
        self.address = address
        self.errno = errno


class I2CBus:
    """Register access to one I2C device.

    SMBus read-word transactions return the low byte first, which matches the
    little-endian LSB/MSB register pairs of the QMC5883L.
    """

    def __init__(self, bus_id: int = DEFAULT_BUS, address: int = DEFAULT_ADDRESS,
                 smbus=None):
        self.bus_id = bus_id
        self.address = address & 0x7F
        self._owns_bus = smbus is None
        if smbus is None:
            try:
                smbus = SMBus(bus_id)
            except OSError as e:
                raise BusError(f"Cannot open I2C bus {bus_id}: {e}",
                               address=self.address, errno=e.errno) from e
            logger.debug("Opened I2C bus %d for device 0x%02X", bus_id, self.address)
        self.bus = smbus

    def __enter__(self) -> "I2CBus":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the bus handle if this object opened it."""
        if self.bus is None:
            return
        if self._owns_bus:
            self.bus.close()
            logger.debug("Closed I2C bus %d", self.bus_id)
        self.bus = None

    def _error(self, op: str, reg: int, e: OSError) -> BusError:
        return BusError(
            f"I2C {op} failed at 0x{self.address:02X} reg 0x{reg:02X}: {e}",
            register=reg,
            address=self.address,
            errno=e.errno,
        )

    def write_byte_register(self, reg: int, value: int) -> None:
        try:
            self.bus.write_byte_data(self.address, reg & 0xFF, value & 0xFF)
        except OSError as e:
            raise self._error('write', reg, e) from e

    def read_byte_register(self, reg: int) -> int:
        try:
            return int(self.bus.read_byte_data(self.address, reg & 0xFF))
        except OSError as e:
            raise self._error('read', reg, e) from e

    def read_word_register_le(self, reg: int) -> int:
        """Read an unsigned 16-bit little-endian word starting at ``reg``."""
        try:
            return int(self.bus.read_word_data(self.address, reg & 0xFF)) & 0xFFFF
        except OSError as e:
            raise self._error('word read', reg, e) from e
