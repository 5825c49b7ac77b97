"""Command-line simulator: loads a program image and runs the CPU on it."""

from __future__ import annotations

import os
import re
import sys
import warnings
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, TextIO

from .cpu import CPU
from .layout import (
    CPU_OS_COMM_ADDR,
    INSTR_COUNT_ADDR,
    PC_ADDR,
    SAVED_TRAP_PC_ADDR,
    SYSCALL_ARG1_PASS_ADDR,
    THREAD_STATE_BLOCKED,
    THREAD_STATE_READY,
    THREAD_STATE_RUNNING,
    THREAD_STATE_TERMINATED,
    USER_MEMORY_START_ADDR,
    CpuEvent,
    TrapVectors,
)
from .memory import DEFAULT_MEMORY_SIZE, DataSectionError, Memory
from .parser import ParseError, parse_instruction_section

MAX_CYCLES = 200000

_USAGE = (
    "Usage: ./gtu_sim <program_filename> [-D<0|1|2|3>] "
    "[--memory-size <size_in_longs>] [--symbols <symbols_header.h>]"
)
_DIGITS = frozenset("0123456789")
_MEMORY_SIZE = re.compile(r"\s*\+?(\d+)")
_DEFINE = re.compile(r"\s*#define\s+([A-Za-z_][A-Za-z0-9_]*)\s+([+-]?\d+)\s*$")
_SEPARATOR = "---------------------------------------------------------"
_REQUIRED_TABLE_SYMBOLS = (
    "TCB_TABLE_START",
    "TOTAL_THREADS",
    "TCB_SIZE",
    "CURRENT_THREAD_ID",
    "NEXT_THREAD_TO_SCHEDULE",
)


class ArgumentError(ValueError):
    """The command line is invalid."""


@dataclass
class ProgramArgs:
    """Options for one simulator run."""

    filename: str = ""
    debug_mode: int = 0
    memory_size: int = DEFAULT_MEMORY_SIZE
    symbols_path: Optional[str] = None


def _is_digit(text: str) -> bool:
    return len(text) == 1 and text in _DIGITS


def _parse_memory_size(text: str) -> int:
    match = _MEMORY_SIZE.match(text)
    if match is None:
        raise ArgumentError(f"Invalid value for --memory-size: {text}")
    size = int(match.group(1))
    if size < USER_MEMORY_START_ADDR:
        warnings.warn(
            f"Small memory size {size}. Recommended >= {USER_MEMORY_START_ADDR} "
            "for OS and threads.",
            RuntimeWarning,
            stacklevel=3,
        )
    if size == 0:
        raise ArgumentError("Memory size cannot be zero.")
    return size


def parse_arguments(argv: Sequence[str]) -> ProgramArgs:
    """Parse command-line arguments (without the program name)."""
    args = ProgramArgs()
    debug_mode = -1
    items = iter(argv)
    for arg in items:
        if arg == "-D":
            value = next(items, None)
            if value is None or not _is_digit(value):
                raise ArgumentError(
                    "Debug flag -D requires a single digit mode (0-3) as the next argument."
                )
            debug_mode = int(value)
        elif arg.startswith("-D") and len(arg) == 3 and _is_digit(arg[2]):
            debug_mode = int(arg[2])
        elif arg in ("--memory-size", "-m"):
            value = next(items, None)
            if value is None:
                raise ArgumentError("--memory-size option requires a value.")
            args.memory_size = _parse_memory_size(value)
        elif arg in ("--symbols", "-s"):
            value = next(items, None)
            if value is None:
                raise ArgumentError("--symbols option requires a value.")
            args.symbols_path = value
        elif not args.filename:
            args.filename = arg
        else:
            raise ArgumentError(f"Unknown or misplaced argument: {arg}")

    if not args.filename:
        raise ArgumentError("Program filename is required.")
    if debug_mode != -1 and not 0 <= debug_mode <= 3:
        raise ArgumentError("Invalid debug mode specified. Must be 0, 1, 2, or 3.")
    args.debug_mode = 0 if debug_mode == -1 else debug_mode
    return args


def load_symbols_header(path: str) -> Dict[str, int]:
    """Read the integer ``#define`` lines of a symbols header into a dict."""
    symbols: Dict[str, int] = {}
    with open(path, encoding="utf-8") as header:
        for line in header:
            match = _DEFINE.match(line)
            if match is not None:
                symbols[match.group(1)] = int(match.group(2))
    return symbols


def _state_name(value: int, states: Mapping[str, int]) -> str:
    for name, state_value in states.items():
        if value == state_value:
            return name
    return f"UNK({value})"


def dump_thread_table(memory: Memory, symbols: Mapping[str, int], out: TextIO) -> None:
    """Write the OS thread table, located through the assembled symbols."""
    print("--- Thread Table Dump ---", file=out)
    print("TID | PC   | SP   | State | StartT | ExecsU | BlockU", file=out)
    print(_SEPARATOR, file=out)

    missing = [name for name in _REQUIRED_TABLE_SYMBOLS if name not in symbols]
    if missing:
        print(
            f"Error: symbol {missing[0]} is not defined. Cannot dump TCB table.",
            file=out,
        )
        return

    states = {
        "READY": memory.read(symbols.get("THREAD_STATE_READY", THREAD_STATE_READY)),
        "RUNNG": memory.read(symbols.get("THREAD_STATE_RUNNING", THREAD_STATE_RUNNING)),
        "BLOCK": memory.read(symbols.get("THREAD_STATE_BLOCKED", THREAD_STATE_BLOCKED)),
        "TERMD": memory.read(
            symbols.get("THREAD_STATE_TERMINATED", THREAD_STATE_TERMINATED)
        ),
    }
    tcb_base = memory.read(symbols["TCB_TABLE_START"])
    thread_count = memory.read(symbols["TOTAL_THREADS"])
    tcb_size = memory.read(symbols["TCB_SIZE"])

    if tcb_size == 0:
        print(
            "Error: TCB_SIZE_CONST in memory (address 27) is zero. Cannot dump TCB table.",
            file=out,
        )
        return

    for index in range(thread_count):
        start = tcb_base + index * tcb_size
        last = start + tcb_size - 1
        if not 0 <= last < len(memory):
            print(
                f"Error: TCB for thread {index + 1} would be out of memory bounds.",
                file=out,
            )
            break
        pc, sp, state, start_time, execs, block = (
            memory.read(start + offset) for offset in range(6)
        )
        print(
            f"{index + 1:>3} | {pc:>4} | {sp:>4} | {_state_name(state, states):>5} | "
            f"{start_time:>6} | {execs:>6} | {block:>6}",
            file=out,
        )

    print(f"OS Current Thread ID: {memory.read(symbols['CURRENT_THREAD_ID'])}", file=out)
    print(
        f"OS Next to Schedule:  {memory.read(symbols['NEXT_THREAD_TO_SCHEDULE'])}",
        file=out,
    )
    print(f"CPU Total Instr:      {memory.read(INSTR_COUNT_ADDR)}", file=out)
    print(f"CPU Event Code:       {memory.read(CPU_OS_COMM_ADDR)}", file=out)
    print(f"CPU Saved Trap PC:    {memory.read(SAVED_TRAP_PC_ADDR)}", file=out)
    print(f"CPU Syscall Arg1:     {memory.read(SYSCALL_ARG1_PASS_ADDR)}", file=out)
    print(_SEPARATOR, file=out)


def _sibling_symbols_path(filename: str) -> Optional[str]:
    stem = filename[:-4] if filename.endswith(".img") else filename
    candidate = stem + "_symbols.h"
    return candidate if os.path.isfile(candidate) else None


def _dump_after_step(memory: Memory, mode: int, stderr: TextIO, stdin: TextIO) -> None:
    if mode == 2:
        print("--- Memory Dump After Step ---", file=stderr)
    memory.dump_range(stderr, 0, len(memory) - 1)
    if mode == 2:
        print("--- Press ENTER to continue to next tick ---", file=stderr)
        stdin.readline()


def _report_event(
    memory: Memory,
    symbols: Mapping[str, int],
    cycle: int,
    was_user: bool,
    is_user: bool,
    event: int,
    stderr: TextIO,
    stdin: TextIO,
) -> None:
    event_occurred = event != CpuEvent.NONE
    to_user = not was_user and is_user
    trap_to_kernel = was_user and not is_user and event_occurred
    if not (to_user or event_occurred):
        return
    print(f"--- D3: Event Trigger (Cycle {cycle}) ---", file=stderr)
    if to_user:
        print("Context switch to USER detected.", file=stderr)
    if trap_to_kernel:
        print(f"Syscall/Trap to KERNEL detected. Event: {event}", file=stderr)
    if event_occurred and not trap_to_kernel:
        print(f"System call event detected. Event: {event}", file=stderr)
    dump_thread_table(memory, symbols, stderr)
    print("Event preserved for OS handling (not cleared by debug mode).", file=stderr)
    print("--- Press ENTER to continue after D3 event ---", file=stderr)
    stdin.readline()


def run(
    args: ProgramArgs,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
    stdin: Optional[TextIO] = None,
) -> int:
    """Load and execute a program image; return the process exit status."""
    out = sys.stdout if stdout is None else stdout
    err = sys.stderr if stderr is None else stderr
    inp = sys.stdin if stdin is None else stdin

    memory = Memory(args.memory_size)

    try:
        with open(args.filename, encoding="utf-8") as program:
            lines: List[str] = program.read().splitlines()
    except OSError:
        print(f"Error: Could not open program file '{args.filename}'.", file=err)
        return 1

    try:
        if not memory.load_data_section(lines):
            print("Error: 'Begin Data Section' marker not found.", file=err)
    except DataSectionError as exc:
        print(f"Error: {exc}", file=err)
        return 1

    try:
        instructions = parse_instruction_section(lines, args.filename)
    except ParseError as exc:
        print(f"Error parsing instruction section: {exc}", file=err)
        return 1

    symbols_path = args.symbols_path or _sibling_symbols_path(args.filename)
    symbols: Dict[str, int] = {}
    if symbols_path is not None:
        try:
            symbols = load_symbols_header(symbols_path)
        except OSError:
            print(f"Error: Could not open symbols file '{symbols_path}'.", file=err)
            return 1

    if memory.read(PC_ADDR) == 0 and not instructions:
        print(
            "Warning: PC is 0 and no instructions loaded. "
            "CPU will likely halt or fault immediately.",
            file=err,
        )

    try:
        cpu = CPU(
            memory,
            instructions,
            prn_handler=lambda value: print(value, file=out),
            vectors=TrapVectors.from_symbols(symbols),
            stderr=err,
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=err)
        return 1

    cycles = 0
    was_user = cpu.user_mode
    while not cpu.halted and cycles < MAX_CYCLES:
        cpu.step()
        cycles += 1
        is_user = cpu.user_mode
        event = memory.read(CPU_OS_COMM_ADDR)
        if args.debug_mode == 3:
            _report_event(memory, symbols, cycles, was_user, is_user, event, err, inp)
        elif args.debug_mode in (1, 2):
            _dump_after_step(memory, args.debug_mode, err, inp)
        was_user = is_user

    if cpu.halted:
        print(f"Program HLT instruction executed after {cycles} cycles.", file=out)
    else:
        print(
            f"Program terminated: Maximum cycle limit reached ({MAX_CYCLES}).", file=err
        )

    if args.debug_mode == 0:
        print("--- Memory Dump After Halt ---", file=err)
        memory.dump_important_regions(err)
    elif cpu.halted:
        print("--- Final Memory State After Halt ---", file=err)
        memory.dump_important_regions(err)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point of the simulator command."""
    arguments = list(sys.argv[1:] if argv is None else argv)
    if not arguments:
        print(_USAGE, file=sys.stderr)
        return 1
    try:
        args = parse_arguments(arguments)
    except ArgumentError as exc:
        print(f"Argument Error: {exc}", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        return 1
    return run(args, sys.stdout, sys.stderr, sys.stdin)