"""Two-pass assembler turning .g312 sources into .img program images."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

_WHITESPACE = " \t\n\r\f\v"
_NUMBER = re.compile(r"[ \t\n\r\f\v]*[+-]?[0-9]+")
_SYMBOL = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_MNEMONIC_OPERANDS = {
    "SET": 2,
    "CPY": 2,
    "CPYI": 2,
    "CPYI2": 2,
    "ADD": 2,
    "ADDI": 2,
    "SUBI": 2,
    "JIF": 2,
    "PUSH": 1,
    "POP": 1,
    "CALL": 1,
    "RET": 0,
    "HLT": 0,
    "USER": 1,
    "STOREI": 2,
    "LOADI": 2,
}

_SYSCALL_OPERANDS = {"PRN": 1, "HLT": 0, "YIELD": 0}

IMPORTANT_SYMBOLS = (
    "OS_SYSCALL_DISPATCHER",
    "OS_MEMORY_FAULT_HANDLER_PC",
    "OS_ARITHMETIC_FAULT_HANDLER_PC",
    "OS_UNKNOWN_INSTRUCTION_HANDLER_PC",
    "THREAD_1_START",
    "THREAD_2_START",
    "THREAD_3_START",
)

_USAGE = (
    "Usage: ./gtu_assembler <input_file.g312> [output_file.img] [symbols_header.h]\n"
    "Enhanced with memory address labels: label_name@address value"
)


class AssemblyError(ValueError):
    """The assembly source is malformed."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.line = line


class _Section(Enum):
    NONE = auto()
    DATA = auto()
    INSTRUCTION = auto()


_MARKERS = {
    "BEGIN DATA SECTION": _Section.DATA,
    "END DATA SECTION": _Section.NONE,
    "BEGIN INSTRUCTION SECTION": _Section.INSTRUCTION,
    "END INSTRUCTION SECTION": _Section.NONE,
}


def trim_and_remove_comments(text: str) -> str:
    """Drop everything from the first '#' and strip surrounding whitespace."""
    return text.split("#", 1)[0].strip(_WHITESPACE)


def is_number(text: str) -> bool:
    """True if the whole text is a base-10 integer, optionally signed."""
    return _NUMBER.fullmatch(text) is not None


def is_valid_symbol(text: str) -> bool:
    """True if the text is an identifier: a letter or '_' then letters, digits, '_'."""
    return _SYMBOL.fullmatch(text) is not None


def _split_label(token: str) -> Tuple[str, str]:
    name, _, address = token.partition("@")
    return name, address


def _statements(text: str) -> List[str]:
    parts = (trim_and_remove_comments(part) for part in text.split(";"))
    return [part for part in parts if part]


@dataclass
class _Line:
    number: int
    raw: str
    content: str


class Assembler:
    """Resolves symbols and labels and numbers instructions."""

    def __init__(self, log: Optional[TextIO] = None) -> None:
        self._log = log
        self.constants: Dict[str, int] = {}
        self.memory_labels: Dict[str, int] = {}

    def _info(self, message: str) -> None:
        if self._log is not None:
            print(message, file=self._log)

    def assemble(self, lines: Iterable[str]) -> List[str]:
        """Assemble source lines and return the lines of the program image."""
        self.constants = {}
        self.memory_labels = {}
        source = [
            _Line(number, raw.rstrip("\n"), trim_and_remove_comments(raw))
            for number, raw in enumerate(lines, start=1)
        ]
        self._collect_symbols(source)
        return self._emit(source)

    # --- pass 1 ---------------------------------------------------------

    def _collect_symbols(self, source: Sequence[_Line]) -> None:
        section = _Section.NONE
        counter = 0
        for line in source:
            if not line.content:
                continue
            marker = _MARKERS.get(line.content.upper())
            if marker is not None:
                section = marker
                if marker is _Section.INSTRUCTION:
                    counter = 0
                continue

            tokens = line.content.split()
            if section is _Section.DATA:
                if len(tokens) < 2:
                    continue
                if "@" in tokens[0]:
                    name, address = _split_label(tokens[0])
                    if is_valid_symbol(name) and is_number(address):
                        self.memory_labels[name] = int(address)
                        self._info(f"Memory label: {name} @ {int(address)}")
                elif len(tokens) == 2 and is_valid_symbol(tokens[0]) and is_number(tokens[1]):
                    self.constants[tokens[0]] = int(tokens[1])
            elif section is _Section.INSTRUCTION:
                if not tokens:
                    continue
                if len(tokens) == 1 and tokens[0].endswith(":"):
                    self.constants[tokens[0][:-1]] = counter
                    continue
                body = line.content
                if is_number(tokens[0]):
                    cut = min(
                        (pos for pos in (body.find(" "), body.find("\t")) if pos >= 0),
                        default=-1,
                    )
                    body = body[cut + 1:]
                counter += len(_statements(body))

    # --- pass 2 ---------------------------------------------------------

    def _resolve(self, token: str, line_no: int) -> str:
        if is_number(token):
            return token
        if token in self.memory_labels:
            return str(self.memory_labels[token])
        if token in self.constants:
            return str(self.constants[token])
        raise AssemblyError(f"Error L{line_no}: Undefined symbol '{token}'", line_no)

    def _emit(self, source: Sequence[_Line]) -> List[str]:
        section = _Section.NONE
        pc = 0
        output: List[str] = []
        for line in source:
            if not line.content:
                output.append(line.raw)
                continue
            marker = _MARKERS.get(line.content.upper())
            if marker is not None:
                section = marker
                if marker is _Section.INSTRUCTION:
                    pc = 0
                output.append(line.content)
                continue

            if section is _Section.NONE:
                raise AssemblyError(
                    f"Error L{line.number}: Content '{line.content}' outside of any section.",
                    line.number,
                )
            if section is _Section.DATA:
                entry = self._data_line(line)
                if entry is not None:
                    output.append(entry)
            else:
                for statement in self._instruction_statements(line):
                    output.append(self._instruction(statement, pc, line.number))
                    pc += 1
        return output

    def _data_line(self, line: _Line) -> Optional[str]:
        tokens = line.content.split()
        n = line.number
        if len(tokens) < 2:
            raise AssemblyError(
                f"Error L{n} (Data): Invalid format. Expected 'address value' or "
                "'symbol value' or 'label@address value'.",
                n,
            )
        first, value = tokens[0], tokens[1]
        if "@" in first:
            name, address = _split_label(first)
            if not (is_valid_symbol(name) and is_number(address)):
                raise AssemblyError(f"Error L{n} (Data): Invalid memory label format.", n)
            return f"{address} {self._resolve(value, n)}"
        if is_valid_symbol(first) and is_number(value):
            return None
        if is_number(first):
            return f"{first} {self._resolve(value, n)}"
        raise AssemblyError(f"Error L{n} (Data): Invalid format.", n)

    @staticmethod
    def _instruction_statements(line: _Line) -> List[str]:
        tokens = line.content.split()
        if not tokens or (len(tokens) == 1 and tokens[0].endswith(":")):
            return []
        body = " ".join(tokens[1:]) if is_number(tokens[0]) else line.content
        return _statements(body)

    def _instruction(self, statement: str, pc: int, n: int) -> str:
        tokens = statement.split()
        mnemonic = tokens[0].upper()
        prefix = f"{pc} {mnemonic}"
        if mnemonic == "SYSCALL":
            if len(tokens) < 2:
                raise AssemblyError(f"Error L{n}: SYSCALL missing subtype", n)
            subtype = tokens[1].upper()
            label = f"{mnemonic} {subtype}"
            expected = _SYSCALL_OPERANDS.get(subtype)
            if expected is None:
                raise AssemblyError(f"Error L{n}: Unknown SYSCALL subtype '{subtype}'", n)
            args = tokens[2:]
            prefix += f" {tokens[1]}"
        else:
            label = mnemonic
            expected = _MNEMONIC_OPERANDS.get(mnemonic)
            if expected is None:
                raise AssemblyError(f"Error L{n}: Unknown mnemonic '{mnemonic}'", n)
            args = []
            for token in tokens[1:]:
                if token == ",":
                    continue
                if token.endswith(","):
                    token = token[:-1]
                if token:
                    args.append(token)

        if len(args) != expected:
            raise AssemblyError(
                f"Error L{n}: Mnemonic '{label}' expects {expected} args, got {len(args)}",
                n,
            )
        resolved = [self._resolve(arg, n) for arg in args]
        return " ".join([prefix, *resolved])

    # --- symbols export -------------------------------------------------

    def symbols_header(self) -> str:
        """Return a C header defining the labels and symbols of the last assembly."""
        parts = [
            "// Auto-generated by GTU Assembler - DO NOT EDIT MANUALLY\n",
            "#ifndef ASSEMBLED_SYMBOLS_H\n",
            "#define ASSEMBLED_SYMBOLS_H\n\n",
            "// Memory Address Labels\n",
        ]
        parts.extend(f"#define {name} {value}\n" for name, value in self.memory_labels.items())
        parts.append("\n// Exported symbol addresses from assembly\n")
        parts.extend(
            f"#define {name} {self.constants[name]}\n"
            for name in IMPORTANT_SYMBOLS
            if name in self.constants
        )
        parts.append("\n// All exported symbols\n")
        parts.extend(
            f"#define SYMBOL_{name} {value}\n"
            for name, value in self.constants.items()
            if name not in IMPORTANT_SYMBOLS
        )
        parts.append("\n#endif // ASSEMBLED_SYMBOLS_H\n")
        return "".join(parts)


def _derived_name(input_name: str, suffix: str) -> str:
    pos = input_name.rfind(".g312")
    return (input_name[:pos] if pos >= 0 else input_name) + suffix


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Assemble a .g312 file into an .img image and a symbols header."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not 1 <= len(args) <= 3:
        print(_USAGE, file=sys.stderr)
        return 1

    input_name = args[0]
    output_name = args[1] if len(args) >= 2 else _derived_name(input_name, ".img")
    header_name = args[2] if len(args) >= 3 else _derived_name(input_name, "_symbols.h")

    try:
        with open(input_name, encoding="utf-8") as source:
            lines = source.read().splitlines()
    except OSError:
        print(f"Error: Could not open input file '{input_name}'.", file=sys.stderr)
        return 1

    assembler = Assembler(log=sys.stdout)
    try:
        image = assembler.assemble(lines)
    except AssemblyError as exc:
        print(exc, file=sys.stderr)
        return 1

    try:
        with open(output_name, "w", encoding="utf-8") as out:
            out.writelines(f"{line}\n" for line in image)
    except OSError:
        print(f"Error: Could not open output file '{output_name}'.", file=sys.stderr)
        return 1

    try:
        with open(header_name, "w", encoding="utf-8") as header:
            header.write(assembler.symbols_header())
    except OSError:
        print(
            f"Warning: Could not create symbols header file '{header_name}'",
            file=sys.stderr,
        )
    else:
        print(
            f"Exported {len(assembler.memory_labels)} memory labels and "
            f"{len(assembler.constants)} symbols to {header_name}"
        )

    print(f"Assembly successful: '{input_name}' -> '{output_name}'")
    return 0