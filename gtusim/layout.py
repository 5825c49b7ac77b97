"""Memory-mapped register addresses, memory layout and CPU event codes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Mapping

PC_ADDR = 0
SP_ADDR = 1
CPU_OS_COMM_ADDR = 2
INSTR_COUNT_ADDR = 3
SAVED_TRAP_PC_ADDR = 4
SYSCALL_ARG1_PASS_ADDR = 5
SYSCALL_ARG2_PASS_ADDR = 6
REGISTERS_END_ADDR = 20

OS_BOOT_START_PC = 0

OS_DATA_START_ADDR = REGISTERS_END_ADDR + 1
OS_DATA_END_ADDR = 999
USER_MEMORY_START_ADDR = 1000

THREAD_STATE_INVALID = 0
THREAD_STATE_READY = 1
THREAD_STATE_RUNNING = 2
THREAD_STATE_BLOCKED = 3
THREAD_STATE_TERMINATED = 4


class CpuEvent(IntEnum):
    """Event codes the CPU leaves in the CPU/OS communication register."""

    NONE = 0
    SYSCALL_PRN = 1
    SYSCALL_HLT_THREAD = 2
    SYSCALL_YIELD = 3
    MEMORY_FAULT_USER = 4
    UNKNOWN_INSTRUCTION_FAULT = 5
    ARITHMETIC_FAULT = 6


@dataclass(frozen=True)
class TrapVectors:
    """Instruction addresses of the OS entry points the CPU jumps to."""

    syscall_dispatcher: int = 50
    memory_fault_handler: int = 220
    arithmetic_fault_handler: int = 230
    unknown_instruction_handler: int = 240

    @classmethod
    def from_symbols(cls, symbols: Mapping[str, int]) -> "TrapVectors":
        """Build vectors from assembled symbols, keeping defaults for missing ones."""
        defaults = cls()
        return cls(
            syscall_dispatcher=symbols.get(
                "OS_SYSCALL_DISPATCHER", defaults.syscall_dispatcher
            ),
            memory_fault_handler=symbols.get(
                "OS_MEMORY_FAULT_HANDLER_PC", defaults.memory_fault_handler
            ),
            arithmetic_fault_handler=symbols.get(
                "OS_ARITHMETIC_FAULT_HANDLER_PC", defaults.arithmetic_fault_handler
            ),
            unknown_instruction_handler=symbols.get(
                "OS_UNKNOWN_INSTRUCTION_HANDLER_PC",
                defaults.unknown_instruction_handler,
            ),
        )