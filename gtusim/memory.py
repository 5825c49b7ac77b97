"""Word-addressed memory with data section loading and dump helpers."""

from __future__ import annotations

import re
import warnings
from typing import Iterable, TextIO

from .layout import (
    OS_DATA_END_ADDR,
    OS_DATA_START_ADDR,
    REGISTERS_END_ADDR,
    USER_MEMORY_START_ADDR,
)

DEFAULT_MEMORY_SIZE = 11000
BEGIN_DATA_MARKER = "Begin Data Section"
END_DATA_MARKER = "End Data Section"

_TABLE_COLUMNS = 10
_NUMBER = re.compile(r"\s*([+-]?\d+)")
_THREAD_AREAS = ((1, 1100, 1199), (2, 1200, 1299), (3, 1300, 1399))


class MemoryAccessError(IndexError):
    """An address outside the memory was read or written."""


class DataSectionError(ValueError):
    """The data section of a program image is malformed."""


def _trim_line(line: str) -> str:
    return line.split("#", 1)[0].strip(" \t\n\r\f\v")


class Memory:
    """A fixed-size array of integer words, all zero initially."""

    def __init__(self, size: int = DEFAULT_MEMORY_SIZE) -> None:
        if size <= 0:
            raise ValueError("Memory size cannot be zero.")
        if size < REGISTERS_END_ADDR + 1:
            warnings.warn(
                f"Memory size {size} is less than {REGISTERS_END_ADDR + 1} "
                "(minimum for registers).",
                RuntimeWarning,
                stacklevel=2,
            )
        self._data = [0] * size

    @property
    def size(self) -> int:
        """Number of words in memory."""
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def _check(self, address: int) -> None:
        if not 0 <= address < len(self._data):
            raise MemoryAccessError(
                f"Memory access violation: Address {address} is out of bounds "
                f"(0-{len(self._data) - 1})."
            )

    def read(self, address: int) -> int:
        """Return the word at ``address``."""
        self._check(address)
        return self._data[address]

    def write(self, address: int, value: int) -> None:
        """Store ``value`` at ``address``."""
        self._check(address)
        self._data[address] = value

    def clear(self) -> None:
        """Set every word to zero."""
        self._data = [0] * len(self._data)

    def load_data_section(self, lines: Iterable[str]) -> bool:
        """Load "address value" pairs between the data section markers.

        Returns False when no begin marker is present, True once the section
        is loaded, and raises DataSectionError on malformed content.
        """
        numbered = enumerate(lines, start=1)
        for _, raw in numbered:
            if _trim_line(raw) == BEGIN_DATA_MARKER:
                break
        else:
            return False

        for line_no, raw in numbered:
            line = _trim_line(raw)
            if line == END_DATA_MARKER:
                return True
            if not line:
                continue
            address, value = self._parse_data_line(line, line_no)
            try:
                self.write(address, value)
            except MemoryAccessError as exc:
                raise DataSectionError(
                    f"{exc} (loading line: '{line}' at file line {line_no})"
                ) from exc
        raise DataSectionError("'End Data Section' marker not found before EOF.")

    @staticmethod
    def _parse_data_line(line: str, line_no: int) -> tuple[int, int]:
        address_match = _NUMBER.match(line)
        if address_match is None:
            raise DataSectionError(
                f"Invalid data format (address) in line: '{line}' at file line {line_no}."
            )
        pos = address_match.end()
        if line[pos:pos + 1] == ",":
            pos += 1
        value_match = _NUMBER.match(line, pos)
        if value_match is None:
            raise DataSectionError(
                f"Invalid data format (value) in line: '{line}' at file line {line_no}."
            )
        if line[value_match.end():].strip():
            raise DataSectionError(
                f"Trailing characters in data line: '{line}' at file line {line_no}."
            )
        return int(address_match.group(1)), int(value_match.group(1))

    def _clip(self, start: int, end: int) -> range:
        return range(max(0, start), min(len(self._data) - 1, end) + 1)

    def dump_range(self, out: TextIO, start: int, end: int) -> None:
        """Write "address:value" lines for the clipped range."""
        for address in self._clip(start, end):
            out.write(f"{address}:{self._data[address]}\n")

    def dump_range_table(self, out: TextIO, start: int, end: int) -> None:
        """Write the clipped range as a table of ten words per row."""
        addresses = self._clip(start, end)
        if not addresses:
            return
        columns = range(_TABLE_COLUMNS)
        out.write("Addr:  |" + "".join(f"{col:>6} |" for col in columns) + "\n")
        out.write("-------|" + "-------|" * _TABLE_COLUMNS + "\n")
        last = addresses[-1]
        for row_start in addresses[::_TABLE_COLUMNS]:
            cells = (
                f"{self._data[row_start + col]:>6} |"
                if row_start + col <= last
                else "       |"
                for col in columns
            )
            out.write(f"{row_start:>6} |" + "".join(cells) + "\n")

    def dump_important_regions(self, out: TextIO) -> None:
        """Write registers, OS data and user/thread areas as tables."""
        top = len(self._data) - 1
        out.write(f"--- Registers (0-{REGISTERS_END_ADDR}) - TABLE FORMAT ---\n")
        self.dump_range_table(out, 0, REGISTERS_END_ADDR)

        out.write(
            f"--- OS Data Area ({OS_DATA_START_ADDR}-{OS_DATA_END_ADDR}) - TABLE FORMAT ---\n"
        )
        self.dump_range_table(out, OS_DATA_START_ADDR, min(OS_DATA_END_ADDR, top))

        if len(self._data) <= USER_MEMORY_START_ADDR:
            return

        sample_end = min(USER_MEMORY_START_ADDR + 19, top)
        out.write(
            f"--- Sample User Area ({USER_MEMORY_START_ADDR}-{sample_end}) - TABLE FORMAT ---\n"
        )
        self.dump_range_table(out, USER_MEMORY_START_ADDR, sample_end)

        for thread, area_start, area_end in _THREAD_AREAS:
            end = min(area_end, top)
            if end >= area_start:
                out.write(
                    f"--- Thread {thread} Data Area ({area_start}-{end}) - TABLE FORMAT ---\n"
                )
                self.dump_range_table(out, area_start, end)