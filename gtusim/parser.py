"""Parser for the instruction section of assembled program images."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

from .instruction import Instruction, OpCode

BEGIN_INSTRUCTION_MARKER = "BEGIN INSTRUCTION SECTION"
END_INSTRUCTION_MARKER = "END INSTRUCTION SECTION"

_NUMBER = re.compile(r"\s*([+-]?\d+)")
_WORD = re.compile(r"\s*(\S+)(.*)", re.DOTALL)
_WHITESPACE = " \t\n\r\f\v"

_MNEMONICS = {
    "SET": OpCode.SET,
    "CPY": OpCode.CPY,
    "CPYI": OpCode.CPYI,
    "CPYI2": OpCode.CPYI2,
    "ADD": OpCode.ADD,
    "ADDI": OpCode.ADDI,
    "SUBI": OpCode.SUBI,
    "JIF": OpCode.JIF,
    "PUSH": OpCode.PUSH,
    "POP": OpCode.POP,
    "CALL": OpCode.CALL,
    "RET": OpCode.RET,
    "HLT": OpCode.HLT,
    "USER": OpCode.USER,
    "STOREI": OpCode.STOREI,
    "LOADI": OpCode.LOADI,
}

_OPERAND_COUNTS = {
    OpCode.HLT: 0,
    OpCode.RET: 0,
    OpCode.USER: 1,
    OpCode.PUSH: 1,
    OpCode.POP: 1,
    OpCode.CALL: 1,
    OpCode.SET: 2,
    OpCode.CPY: 2,
    OpCode.CPYI: 2,
    OpCode.CPYI2: 2,
    OpCode.ADD: 2,
    OpCode.ADDI: 2,
    OpCode.SUBI: 2,
    OpCode.JIF: 2,
    OpCode.STOREI: 2,
    OpCode.LOADI: 2,
}

_SYSCALLS = {
    "PRN": OpCode.SYSCALL_PRN,
    "HLT": OpCode.SYSCALL_HLT_THREAD,
    "YIELD": OpCode.SYSCALL_YIELD,
}


class ParseError(ValueError):
    """The instruction section of a program image is malformed."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.line = line


def _take_number(text: str) -> Optional[Tuple[int, str]]:
    match = _NUMBER.match(text)
    if match is None:
        return None
    return int(match.group(1)), text[match.end():]


def _take_word(text: str) -> Optional[Tuple[str, str]]:
    match = _WORD.match(text)
    if match is None:
        return None
    return match.group(1), match.group(2)


def _parse_operands(text: str, count: int) -> Optional[List[int]]:
    rest = text.replace(",", "")
    values: List[int] = []
    for _ in range(count):
        taken = _take_number(rest)
        if taken is None:
            return None
        value, rest = taken
        values.append(value)
    return values


def _parse_line(trimmed: str, raw: str, line_no: int) -> Tuple[int, Instruction]:
    def fail(message: str) -> ParseError:
        return ParseError(f"Error L{line_no}: {message}", line_no)

    taken_pc = _take_number(trimmed)
    if taken_pc is None:
        raise fail("Missing instruction line number.")
    pc, rest = taken_pc

    taken_mnemonic = _take_word(rest)
    if taken_mnemonic is None:
        raise fail("Missing mnemonic.")
    mnemonic, operands = taken_mnemonic
    mnemonic = mnemonic.upper()
    operands = operands.lstrip(" \t")

    if mnemonic == "SYSCALL":
        taken_type = _take_word(operands)
        if taken_type is None:
            raise fail("SYSCALL missing type.")
        syscall_type, syscall_rest = taken_type
        syscall_type = syscall_type.upper()
        opcode = _SYSCALLS.get(syscall_type)
        if opcode is None:
            raise fail(f"Unknown SYSCALL type '{syscall_type}'.")
        if opcode is OpCode.SYSCALL_PRN:
            taken_arg = _take_number(syscall_rest)
            if taken_arg is None:
                raise fail("SYSCALL PRN missing argument.")
            instr = Instruction(opcode, taken_arg[0], 0, 1, raw)
        else:
            instr = Instruction(opcode, 0, 0, 0, raw)
    else:
        opcode = _MNEMONICS.get(mnemonic)
        if opcode is None:
            raise fail(f"Unknown mnemonic '{mnemonic}'.")
        expected = _OPERAND_COUNTS[opcode]
        values = _parse_operands(operands, expected)
        if values is None:
            raise fail(f"{mnemonic} expects {expected} operand(s).")
        args = values + [0] * (2 - len(values))
        instr = Instruction(opcode, args[0], args[1], expected, raw)

    if pc < 0:
        raise fail("Instruction PC cannot be negative.")
    return pc, instr


def parse_instruction_section(lines: Iterable[str], filename: str) -> List[Instruction]:
    """Parse the instruction section of an assembled ``.img`` program.

    Each instruction line has the form "PC MNEMONIC [args...]"; the result is
    indexed by PC, and PCs that no line names are left as holes.
    """
    if not filename.endswith(".img"):
        stem = filename[:-5] if len(filename) >= 5 else filename
        raise ParseError(
            "Parser now only supports .img files. For .g312 files, please assemble "
            f"first using: tools/gtu_assembler {filename} {stem}.img"
        )

    instructions: List[Instruction] = []
    in_section = False
    for line_no, raw_line in enumerate(lines, start=1):
        raw = raw_line.rstrip("\n")
        upper = raw.upper()
        if BEGIN_INSTRUCTION_MARKER in upper:
            in_section = True
            continue
        if END_INSTRUCTION_MARKER in upper:
            break

        trimmed = raw.split("#", 1)[0].strip(_WHITESPACE)
        if not in_section or not trimmed:
            continue

        pc, instr = _parse_line(trimmed, raw, line_no)
        if pc >= len(instructions):
            instructions.extend(Instruction() for _ in range(pc + 1 - len(instructions)))
        instructions[pc] = instr

    return instructions