"""Instruction opcodes and parsed instructions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class OpCode(IntEnum):
    """Operation codes understood by the CPU."""

    SET = 0
    CPY = 1
    CPYI = 2
    CPYI2 = 3
    ADD = 4
    ADDI = 5
    SUBI = 6
    JIF = 7
    PUSH = 8
    POP = 9
    CALL = 10
    RET = 11
    HLT = 12
    USER = 13
    STOREI = 14
    LOADI = 15
    SYSCALL_PRN = 16
    SYSCALL_HLT_THREAD = 17
    SYSCALL_YIELD = 18
    UNKNOWN = 19


@dataclass(frozen=True)
class Instruction:
    """A parsed instruction with its operands and the line it came from."""

    opcode: OpCode = OpCode.UNKNOWN
    arg1: int = 0
    arg2: int = 0
    num_operands: int = 0
    original_line: str = ""

    def is_hole(self) -> bool:
        """True for a slot that no instruction line filled."""
        return self.opcode is OpCode.UNKNOWN and not self.original_line


def opcode_name(op: OpCode | int) -> str:
    """Return the mnemonic name of an opcode, or INVALID_OPCODE."""
    try:
        return OpCode(op).name
    except ValueError:
        return "INVALID_OPCODE"