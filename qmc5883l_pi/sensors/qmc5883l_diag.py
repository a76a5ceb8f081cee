"""QMC5883L register dump helper.

Used by ``python3 -m qmc5883l_pi.main --dump`` when a device ACKs on I2C but
returns constant or zero magnetometer data.
"""

from __future__ import annotations

from typing import Optional

from qmc5883l_pi.communication.i2c_bus import BusError
from qmc5883l_pi.sensors.qmc5883l import (
    REG_CHIP_ID,
    REG_CONTROL1,
    REG_CONTROL2,
    REG_RST_PERIOD,
    REG_STATUS1,
)

NAMED_REGISTERS = [
    (REG_STATUS1, "STATUS"),
    (REG_CONTROL1, "CTRL1"),
    (REG_CONTROL2, "CTRL2"),
    (REG_RST_PERIOD, "SETRST"),
    (REG_CHIP_ID, "CHIPID"),
]


def parse_addr(s: str) -> int:
    s = s.strip().lower()
    return int(s, 16) if s.startswith("0x") else int(s)


def dump_registers(bus, start: int = 0x00, count: int = 0x0E) -> list[Optional[int]]:
    vals: list[Optional[int]] = []
    for off in range(count):
        reg = (start + off) & 0xFF
        try:
            vals.append(bus.read_byte_register(reg))
        except BusError:
            vals.append(None)
    return vals


def fmt(vals: list[Optional[int]]) -> str:
    return " ".join("??" if v is None else f"{v:02X}" for v in vals)


def describe(vals: list[Optional[int]], start: int = 0x00) -> str:
    """One line summary of the control/status registers found in ``vals``."""
    parts = []
    for reg, name in NAMED_REGISTERS:
        idx = reg - start
        if 0 <= idx < len(vals):
            v = vals[idx]
            parts.append(f"{name}(0x{reg:02X})={'??' if v is None else f'0x{v:02X}'}")
    return " ".join(parts)
