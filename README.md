# gtusim

An assembler and a cycle-by-cycle simulator for the GTU-C312 teaching CPU.

The CPU has no registers of its own. The program counter (address 0), the
stack pointer (1), the CPU/OS event register (2), the instruction counter (3),
the saved trap PC (4) and the system-call argument (5) all live at the bottom
of memory, in addresses 0–20. Addresses 21–999 belong to the operating
system; code running in user mode may only touch memory from address 1000
upwards. A user-mode access below that line, an unknown instruction or a run
time error traps into the operating system's fault handlers; the same problem
in kernel mode halts the CPU.

## Installing

```
pip install .
```

This installs two commands, `gtu-assembler` and `gtu-sim`.

## Assembling a program

Source files (`.g312`) have a data section and an instruction section:

```
Begin Data Section
0 0              # PC starts at instruction 0
1 10999          # SP
COUNTER@1000 3   # memory label: names address 1000 and stores 3 there
LIMIT 3          # symbolic constant, no memory is written
End Data Section
Begin Instruction Section
LOOP:
  SYSCALL PRN COUNTER
  ADD COUNTER -1
  JIF COUNTER DONE
  SET LOOP 0
DONE:
  HLT
OS_SYSCALL_DISPATCHER:
  CPY 4 0        # return to the instruction after the system call
End Instruction Section
```

Instructions may be numbered or not, several may share one line separated by
`;`, commas between operands are allowed, and operands may refer to labels,
memory labels and symbolic constants. An undefined symbol, an unknown
mnemonic, a wrong operand count or content outside a section is an error.

```
gtu-assembler program.g312 [program.img] [program_symbols.h]
```

Without the optional names, the output goes to `program.img` and
`program_symbols.h`. The image holds plain numeric data lines and numbered
instructions. The symbols header is a C header with a `#define` for every
memory label and every constant; the operating system entry points
(`OS_SYSCALL_DISPATCHER`, `OS_MEMORY_FAULT_HANDLER_PC`,
`OS_ARITHMETIC_FAULT_HANDLER_PC`, `OS_UNKNOWN_INSTRUCTION_HANDLER_PC`) and
`THREAD_1_START`…`THREAD_3_START` keep their names, other constants get a
`SYMBOL_` prefix.

## Running a program

```
gtu-sim program.img [-D<0|1|2|3>] [--memory-size <cells>] [--symbols <header.h>]
```

Only assembled `.img` files are accepted. Memory defaults to 11000 cells
(`-m` is short for `--memory-size`; a size under 1000 draws a warning).
`SYSCALL PRN` output and the final "Program HLT instruction executed after N
cycles." line go to standard output; diagnostics and dumps go to standard
error. A run stops on `HLT` or after 200000 cycles.

The simulator reads a symbols header (given with `--symbols`/`-s`, or
`program_symbols.h` next to `program.img` if it exists) to learn where the
system-call dispatcher and the fault handlers are. Without one it uses
instruction 50 for the dispatcher and 220, 230 and 240 for the memory,
arithmetic and unknown-instruction fault handlers. With the example above,
`gtu-sim program.img` prints 3, 2 and 1.

Debug modes:

- `-D0` (default) – after the run, dump registers, the OS area, addresses 1000–1019 and the thread data areas 1100–1399 as tables.
- `-D1` – dump all of memory as `address:value` lines after every cycle.
- `-D2` – as `-D1`, then wait for ENTER before the next cycle.
- `-D3` – on every CPU event or switch into user mode, print the thread table and wait for ENTER.

For `-D3`, the thread table is found through the symbols `TCB_TABLE_START`,
`TOTAL_THREADS`, `TCB_SIZE`, `CURRENT_THREAD_ID` and
`NEXT_THREAD_TO_SCHEDULE` (and optionally `THREAD_STATE_READY`, `…_RUNNING`,
`…_BLOCKED`, `…_TERMINATED`) from the symbols header; if one is missing, an
error line is printed in place of the table.

## Instruction set

| Instruction | Effect |
|---|---|
| `SET B A` | mem[A] = B |
| `CPY A1 A2` | mem[A2] = mem[A1] |
| `CPYI A1 A2` | mem[A2] = mem[mem[A1]] |
| `CPYI2 A1 A2` | mem[mem[A2]] = mem[mem[A1]] |
| `ADD A B` | mem[A] += B |
| `ADDI A1 A2` | mem[A1] += mem[A2] |
| `SUBI A1 A2` | mem[A2] = mem[A1] − mem[A2] |
| `STOREI S P` | mem[mem[P]] = mem[S] |
| `LOADI P D` | mem[D] = mem[mem[P]] |
| `JIF A C` | jump to C if mem[A] ≤ 0 |
| `PUSH A` / `POP A` | stack push / pop |
| `CALL C` / `RET` | subroutine call / return |
| `HLT` | stop the CPU |
| `USER A` | enter user mode at mem[A] |
| `SYSCALL PRN A` | print mem[A], trap to the dispatcher |
| `SYSCALL HLT` | trap to the dispatcher with the thread-halt event |
| `SYSCALL YIELD` | trap to the dispatcher with the yield event |

Writing to address 0 with a data instruction changes the program counter.
On a system call the CPU switches to kernel mode, stores the address of the
next instruction at 4 and the event code (`CpuEvent`) at 2.

## Using the library

```python
from gtusim.assembler import Assembler
from gtusim.cpu import CPU
from gtusim.memory import Memory
from gtusim.parser import parse_instruction_section

with open("program.g312") as f:
    image = Assembler().assemble(f.read().splitlines())

memory = Memory(11000)
memory.load_data_section(image)
program = parse_instruction_section(image, "program.img")
cpu = CPU(memory, program, prn_handler=print)
while not cpu.halted:
    cpu.step()
```

- `gtusim.memory` – `Memory` (`read`, `write`, `clear`, `load_data_section`, `dump_range`, `dump_range_table`, `dump_important_regions`), `MemoryAccessError`, `DataSectionError`.
- `gtusim.instruction` – `OpCode`, `Instruction`, `opcode_name`.
- `gtusim.layout` – register addresses, `CpuEvent` and `TrapVectors` (`TrapVectors.from_symbols` builds the entry points from a symbol dict).
- `gtusim.parser` – `parse_instruction_section`, `ParseError`.
- `gtusim.cpu` – `CPU` (`step`, `reset`, `halted`, `user_mode`, `program_counter`), `UserMemoryFault`, `ArithmeticFault`.
- `gtusim.assembler` – `Assembler` (`assemble`, `symbols_header`), `AssemblyError`, `main`.
- `gtusim.simulator` – `parse_arguments`, `ProgramArgs`, `load_symbols_header`, `dump_thread_table`, `run`, `main`.

## What is not included

No operating system program comes with the package. System calls and faults
only jump to the addresses of the handlers; scheduling threads, handling
their system calls and keeping a thread table is the job of a `.g312`
program you write. `gtu-sim` does not assemble source files itself: run
`gtu-assembler` first.

## Tests

```
pip install .[test]
pytest
```