from __future__ import annotations

import logging

import pytest

from qmc5883l_pi.communication.i2c_bus import BusError
from qmc5883l_pi.utils.logger import HANDLER_PREFIX


class FakeBus:
    """In-memory register bus that records every transaction.

    ``fail`` holds ``(op, reg)`` pairs whose transactions raise BusError,
    with op one of ``write``, ``read`` or ``word``.
    """

    def __init__(self, regs: dict[int, int] | None = None, words: dict[int, int] | None = None):
        self.regs = dict(regs or {})
        self.words = dict(words or {})
        self.fail: set[tuple[str, int]] = set()
        self.calls: list[tuple] = []

    def _check(self, op: str, reg: int) -> None:
        if (op, reg) in self.fail:
            raise BusError(f"simulated {op} failure at reg 0x{reg:02X}", register=reg, address=0x0D, errno=121)

    def write_byte_register(self, reg: int, value: int) -> None:
        self.calls.append(("write", reg, value))
        self._check("write", reg)
        self.regs[reg] = value

    def read_byte_register(self, reg: int) -> int:
        self.calls.append(("read", reg))
        self._check("read", reg)
        return self.regs.get(reg, 0)

    def read_word_register_le(self, reg: int) -> int:
        self.calls.append(("word", reg))
        self._check("word", reg)
        return self.words.get(reg, 0)

    def word_reads(self) -> list[int]:
        return [c[1] for c in self.calls if c[0] == "word"]

    def writes(self) -> list[tuple[int, int]]:
        return [(c[1], c[2]) for c in self.calls if c[0] == "write"]

    def __enter__(self) -> "FakeBus":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        pass


@pytest.fixture
def fake_bus() -> FakeBus:
    return FakeBus()


@pytest.fixture(autouse=True)
def _drop_program_log_handlers():
    # main() installs stdout handlers on the root logger; they must not
    # outlive the captured stdout of the test that created them.
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith(HANDLER_PREFIX):
            root.removeHandler(handler)
            handler.close()
