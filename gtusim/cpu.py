"""The CPU: fetches parsed instructions and executes them against memory."""

from __future__ import annotations

import sys
from typing import Callable, Optional, Sequence, TextIO

from .instruction import Instruction, OpCode
from .layout import (
    CPU_OS_COMM_ADDR,
    INSTR_COUNT_ADDR,
    PC_ADDR,
    REGISTERS_END_ADDR,
    SAVED_TRAP_PC_ADDR,
    SP_ADDR,
    SYSCALL_ARG1_PASS_ADDR,
    USER_MEMORY_START_ADDR,
    CpuEvent,
    TrapVectors,
)
from .memory import Memory, MemoryAccessError

PrnHandler = Callable[[int], None]


class UserMemoryFault(Exception):
    """User-mode code touched memory below the user area."""

    def __init__(self, message: str, address: int) -> None:
        super().__init__(message)
        self.address = address


class ArithmeticFault(RuntimeError):
    """An arithmetic error raised while executing an instruction."""


class _ExecutionError(RuntimeError):
    """A runtime error during execution, tagged with the event it maps to in user mode."""

    def __init__(self, message: str, event: CpuEvent = CpuEvent.ARITHMETIC_FAULT) -> None:
        super().__init__(message)
        self.event = event


_OPERAND_COUNTS = {
    OpCode.SET: 2,
    OpCode.CPY: 2,
    OpCode.CPYI: 2,
    OpCode.CPYI2: 2,
    OpCode.ADD: 2,
    OpCode.ADDI: 2,
    OpCode.SUBI: 2,
    OpCode.STOREI: 2,
    OpCode.LOADI: 2,
    OpCode.JIF: 2,
    OpCode.PUSH: 1,
    OpCode.POP: 1,
    OpCode.CALL: 1,
    OpCode.RET: 0,
    OpCode.HLT: 0,
    OpCode.USER: 1,
    OpCode.SYSCALL_PRN: 1,
    OpCode.SYSCALL_HLT_THREAD: 0,
    OpCode.SYSCALL_YIELD: 0,
}

_LABELS = {
    OpCode.SYSCALL_PRN: "SYSCALL PRN",
    OpCode.SYSCALL_HLT_THREAD: "SYSCALL HLT_THREAD",
    OpCode.SYSCALL_YIELD: "SYSCALL YIELD",
}


class CPU:
    """Executes instructions one cycle at a time; registers live in memory."""

    def __init__(
        self,
        memory: Memory,
        instructions: Sequence[Instruction],
        prn_handler: Optional[PrnHandler] = None,
        vectors: Optional[TrapVectors] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        if len(memory) < REGISTERS_END_ADDR + 1:
            raise ValueError("Memory size too small for CPU registers.")
        self._memory = memory
        self._instructions = instructions
        self._prn_handler = prn_handler
        self._vectors = vectors if vectors is not None else TrapVectors()
        self._stderr = stderr
        self._halted = False
        self._user_mode = False
        self._pc_written_by_data = False
        self._handlers = {
            OpCode.SET: self._op_set,
            OpCode.CPY: self._op_cpy,
            OpCode.CPYI: self._op_cpyi,
            OpCode.CPYI2: self._op_cpyi2,
            OpCode.ADD: self._op_add,
            OpCode.ADDI: self._op_addi,
            OpCode.SUBI: self._op_subi,
            OpCode.STOREI: self._op_storei,
            OpCode.LOADI: self._op_loadi,
            OpCode.JIF: self._op_jif,
            OpCode.PUSH: self._op_push,
            OpCode.POP: self._op_pop,
            OpCode.CALL: self._op_call,
            OpCode.RET: self._op_ret,
            OpCode.HLT: self._op_hlt,
            OpCode.USER: self._op_user,
            OpCode.SYSCALL_PRN: self._op_syscall_prn,
            OpCode.SYSCALL_HLT_THREAD: self._op_syscall_hlt_thread,
            OpCode.SYSCALL_YIELD: self._op_syscall_yield,
        }

    # --- state -----------------------------------------------------------

    def reset(self) -> None:
        """Clear the halt flag and return to kernel mode."""
        self._halted = False
        self._user_mode = False
        self._pc_written_by_data = False

    @property
    def halted(self) -> bool:
        """True once HLT ran or a kernel-mode fault stopped the CPU."""
        return self._halted

    @property
    def user_mode(self) -> bool:
        """True while executing in user mode."""
        return self._user_mode

    @property
    def program_counter(self) -> int:
        """The PC register as stored in memory."""
        return self._memory.read(PC_ADDR)

    def _log(self, message: str) -> None:
        print(message, file=self._stderr if self._stderr is not None else sys.stderr)

    # --- memory access ---------------------------------------------------

    def _read(self, address: int) -> int:
        if self._user_mode and 0 <= address < USER_MEMORY_START_ADDR:
            raise UserMemoryFault("User mode read access violation", address)
        try:
            return self._memory.read(address)
        except MemoryAccessError as exc:
            raise _ExecutionError(
                f"CPU memory read out of bounds at address {address}. Details: {exc}"
            ) from exc

    def _write(self, address: int, value: int) -> None:
        if self._user_mode and 0 <= address < USER_MEMORY_START_ADDR:
            raise UserMemoryFault("User mode write access violation", address)
        try:
            self._memory.write(address, value)
        except MemoryAccessError as exc:
            raise _ExecutionError(
                f"CPU memory write out of bounds at address {address}. Details: {exc}"
            ) from exc
        if address == PC_ADDR:
            self._pc_written_by_data = True

    def _trap(self, saved_pc: int, event: CpuEvent) -> None:
        self._user_mode = False
        self._memory.write(SAVED_TRAP_PC_ADDR, saved_pc)
        self._memory.write(CPU_OS_COMM_ADDR, int(event))

    def _vector_for(self, event: CpuEvent) -> int:
        if event is CpuEvent.MEMORY_FAULT_USER:
            return self._vectors.memory_fault_handler
        if event is CpuEvent.UNKNOWN_INSTRUCTION_FAULT:
            return self._vectors.unknown_instruction_handler
        return self._vectors.arithmetic_fault_handler

    # --- execution -------------------------------------------------------

    def step(self) -> None:
        """Execute one instruction cycle; does nothing once halted."""
        if self._halted:
            return

        current_pc = self._memory.read(PC_ADDR)
        self._pc_written_by_data = False
        fetched: Optional[Instruction] = None
        next_pc: Optional[int] = None

        try:
            if not 0 <= current_pc < len(self._instructions):
                upper = len(self._instructions) - 1 if self._instructions else 0
                raise _ExecutionError(
                    f"Program Counter ({current_pc}) is out of instruction bounds (0-{upper}).",
                    CpuEvent.UNKNOWN_INSTRUCTION_FAULT,
                )
            instr = self._instructions[current_pc]
            fetched = instr
            if instr.is_hole():
                self._log(
                    f"CPU WARNING: Encountered uninitialized instruction (hole) at PC "
                    f"{current_pc}. Treating as HLT."
                )
                self._halted = True
                next_pc = current_pc
            else:
                next_pc = self._execute(instr, current_pc)
        except UserMemoryFault as fault:
            where = f" ({fetched.original_line})" if fetched and fetched.original_line else ""
            self._log(
                f"CPU FAULT: User mode memory fault during execution of instruction at PC "
                f"{current_pc}{where}:\n  {fault} at address {fault.address}"
            )
            self._trap(current_pc, CpuEvent.MEMORY_FAULT_USER)
            self._memory.write(SYSCALL_ARG1_PASS_ADDR, fault.address)
            next_pc = self._vectors.memory_fault_handler
        except (_ExecutionError, ArithmeticFault) as error:
            show = (
                fetched is not None
                and fetched.original_line
                and fetched.opcode is not OpCode.UNKNOWN
            )
            where = f" ({fetched.original_line})" if show else ""
            self._log(
                f"CPU FAULT: Runtime error during execution of instruction at PC "
                f"{current_pc}{where}:\n  {error}"
            )
            if self._user_mode:
                event = getattr(error, "event", CpuEvent.ARITHMETIC_FAULT)
                self._trap(current_pc, event)
                next_pc = self._vector_for(event)
            else:
                self._halted = True
                next_pc = current_pc

        self._memory.write(INSTR_COUNT_ADDR, self._memory.read(INSTR_COUNT_ADDR) + 1)

        if self._halted:
            return
        if next_pc is not None:
            self._memory.write(PC_ADDR, next_pc)
        elif not self._pc_written_by_data:
            self._memory.write(PC_ADDR, current_pc + 1)

    def _execute(self, instr: Instruction, current_pc: int) -> Optional[int]:
        """Run one instruction; return the jump target, or None to fall through."""
        handler = self._handlers.get(instr.opcode)
        if handler is None:
            self._log(
                f"CPU FAULT: Unknown or unimplemented opcode encountered at PC "
                f"{current_pc}. Instruction: {instr.original_line}"
            )
            if self._user_mode:
                self._trap(current_pc, CpuEvent.UNKNOWN_INSTRUCTION_FAULT)
                return self._vectors.unknown_instruction_handler
            self._halted = True
            return current_pc
        if instr.num_operands != _OPERAND_COUNTS[instr.opcode]:
            label = _LABELS.get(instr.opcode, instr.opcode.name)
            raise _ExecutionError(f"{label}: Invalid number of operands.")
        return handler(instr, current_pc)

    def _op_set(self, instr: Instruction, pc: int) -> None:
        self._write(instr.arg2, instr.arg1)

    def _op_cpy(self, instr: Instruction, pc: int) -> None:
        self._write(instr.arg2, self._read(instr.arg1))

    def _op_cpyi(self, instr: Instruction, pc: int) -> None:
        self._write(instr.arg2, self._read(self._read(instr.arg1)))

    def _op_cpyi2(self, instr: Instruction, pc: int) -> None:
        source = self._read(instr.arg1)
        target = self._read(instr.arg2)
        self._write(target, self._read(source))

    def _op_add(self, instr: Instruction, pc: int) -> None:
        self._write(instr.arg1, self._read(instr.arg1) + instr.arg2)

    def _op_addi(self, instr: Instruction, pc: int) -> None:
        self._write(instr.arg1, self._read(instr.arg1) + self._read(instr.arg2))

    def _op_subi(self, instr: Instruction, pc: int) -> None:
        self._write(instr.arg2, self._read(instr.arg1) - self._read(instr.arg2))

    def _op_storei(self, instr: Instruction, pc: int) -> None:
        value = self._read(instr.arg1)
        pointer = self._read(instr.arg2)
        self._write(pointer, value)

    def _op_loadi(self, instr: Instruction, pc: int) -> None:
        pointer = self._read(instr.arg1)
        self._write(instr.arg2, self._read(pointer))

    def _op_jif(self, instr: Instruction, pc: int) -> Optional[int]:
        return instr.arg2 if self._read(instr.arg1) <= 0 else None

    def _push_slot(self, name: str) -> int:
        sp = self._memory.read(SP_ADDR) - 1
        if sp < 0:
            raise _ExecutionError(
                f"Stack overflow during {name} (SP would be negative).",
                CpuEvent.MEMORY_FAULT_USER,
            )
        self._memory.write(SP_ADDR, sp)
        return sp

    def _pop_value(self) -> int:
        sp = self._memory.read(SP_ADDR)
        value = self._read(sp)
        self._memory.write(SP_ADDR, sp + 1)
        return value

    def _op_push(self, instr: Instruction, pc: int) -> None:
        sp = self._push_slot("PUSH")
        self._write(sp, self._read(instr.arg1))

    def _op_pop(self, instr: Instruction, pc: int) -> None:
        self._write(instr.arg1, self._pop_value())

    def _op_call(self, instr: Instruction, pc: int) -> int:
        sp = self._push_slot("CALL")
        self._write(sp, pc + 1)
        return instr.arg1

    def _op_ret(self, instr: Instruction, pc: int) -> int:
        return self._pop_value()

    def _op_hlt(self, instr: Instruction, pc: int) -> int:
        self._halted = True
        return pc

    def _op_user(self, instr: Instruction, pc: int) -> int:
        target = self._read(instr.arg1)
        self._user_mode = True
        return target

    def _op_syscall_prn(self, instr: Instruction, pc: int) -> int:
        self._user_mode = False
        value = self._read(instr.arg1)
        if self._prn_handler is not None:
            self._prn_handler(value)
        else:
            print(value)
        self._trap(pc + 1, CpuEvent.SYSCALL_PRN)
        self._memory.write(SYSCALL_ARG1_PASS_ADDR, instr.arg1)
        return self._vectors.syscall_dispatcher

    def _op_syscall_hlt_thread(self, instr: Instruction, pc: int) -> int:
        self._trap(pc + 1, CpuEvent.SYSCALL_HLT_THREAD)
        return self._vectors.syscall_dispatcher

    def _op_syscall_yield(self, instr: Instruction, pc: int) -> int:
        self._trap(pc + 1, CpuEvent.SYSCALL_YIELD)
        return self._vectors.syscall_dispatcher