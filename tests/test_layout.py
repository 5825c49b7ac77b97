import pytest

from gtusim.layout import CpuEvent, TrapVectors


@pytest.mark.parametrize(
    "event, code",
    [
        (CpuEvent.NONE, 0),
        (CpuEvent.SYSCALL_PRN, 1),
        (CpuEvent.SYSCALL_HLT_THREAD, 2),
        (CpuEvent.SYSCALL_YIELD, 3),
        (CpuEvent.MEMORY_FAULT_USER, 4),
        (CpuEvent.UNKNOWN_INSTRUCTION_FAULT, 5),
        (CpuEvent.ARITHMETIC_FAULT, 6),
    ],
)
def test_event_codes(event, code):
    assert int(event) == code
    assert CpuEvent(code) is event


def test_default_vectors():
    vectors = TrapVectors()
    assert vectors.syscall_dispatcher == 50
    assert vectors.memory_fault_handler == 220
    assert vectors.arithmetic_fault_handler == 230
    assert vectors.unknown_instruction_handler == 240


def test_from_empty_symbols_equals_defaults():
    assert TrapVectors.from_symbols({}) == TrapVectors()


def test_from_symbols_overrides_all():
    symbols = {
        "OS_SYSCALL_DISPATCHER": 11,
        "OS_MEMORY_FAULT_HANDLER_PC": 12,
        "OS_ARITHMETIC_FAULT_HANDLER_PC": 13,
        "OS_UNKNOWN_INSTRUCTION_HANDLER_PC": 14,
    }
    vectors = TrapVectors.from_symbols(symbols)
    assert vectors == TrapVectors(11, 12, 13, 14)


def test_from_symbols_partial_keeps_defaults():
    vectors = TrapVectors.from_symbols({"OS_SYSCALL_DISPATCHER": 7, "OTHER": 99})
    assert vectors.syscall_dispatcher == 7
    assert vectors.memory_fault_handler == TrapVectors().memory_fault_handler
    assert vectors.unknown_instruction_handler == TrapVectors().unknown_instruction_handler