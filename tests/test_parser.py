import pytest

from gtusim.instruction import Instruction, OpCode
from gtusim.parser import ParseError, parse_instruction_section


def _image(*body):
    return [
        "Begin Data Section",
        "0 0",
        "End Data Section",
        "Begin Instruction Section",
        *body,
        "End Instruction Section",
    ]


def test_parses_basic_instructions():
    result = parse_instruction_section(
        _image("0 SET 5 100", "1 CPY 100 101", "2 HLT"), "prog.img"
    )
    assert [i.opcode for i in result] == [OpCode.SET, OpCode.CPY, OpCode.HLT]
    assert (result[0].arg1, result[0].arg2, result[0].num_operands) == (5, 100, 2)
    assert (result[1].arg1, result[1].arg2) == (100, 101)
    assert result[2].num_operands == 0


def test_original_line_kept_without_newline():
    result = parse_instruction_section(
        ["Begin Instruction Section\n", "0 PUSH 7  # keep\n", "End Instruction Section\n"],
        "a.img",
    )
    assert result[0].original_line == "0 PUSH 7  # keep"
    assert result[0].arg1 == 7
    assert result[0].num_operands == 1


def test_mnemonic_is_case_insensitive_and_commas_ignored():
    result = parse_instruction_section(_image("0 addi 10, 11"), "x.img")
    assert result[0].opcode is OpCode.ADDI
    assert (result[0].arg1, result[0].arg2) == (10, 11)


def test_negative_operands():
    result = parse_instruction_section(_image("0 ADD 50 -3"), "x.img")
    assert result[0].arg2 == -3


def test_lines_outside_section_are_ignored():
    lines = ["0 BOGUS line", *_image("0 RET"), "5 NOPE"]
    result = parse_instruction_section(lines, "x.img")
    assert len(result) == 1
    assert result[0].opcode is OpCode.RET


def test_comments_and_blank_lines_skipped():
    result = parse_instruction_section(
        _image("", "# just a comment", "   ", "0 HLT # stop"), "x.img"
    )
    assert len(result) == 1
    assert result[0].opcode is OpCode.HLT


def test_gaps_become_holes():
    result = parse_instruction_section(_image("0 HLT", "3 RET"), "x.img")
    assert len(result) == 4
    assert result[1].is_hole()
    assert result[2] == Instruction()
    assert result[3].opcode is OpCode.RET
    assert not result[0].is_hole()


def test_out_of_order_and_overwrite():
    result = parse_instruction_section(_image("1 RET", "0 HLT", "1 CALL 0"), "x.img")
    assert result[0].opcode is OpCode.HLT
    assert result[1].opcode is OpCode.CALL
    assert result[1].arg1 == 0


@pytest.mark.parametrize(
    "text, opcode, arg1, count",
    [
        ("0 SYSCALL PRN 1000", OpCode.SYSCALL_PRN, 1000, 1),
        ("0 syscall prn 1000", OpCode.SYSCALL_PRN, 1000, 1),
        ("0 SYSCALL HLT", OpCode.SYSCALL_HLT_THREAD, 0, 0),
        ("0 SYSCALL YIELD", OpCode.SYSCALL_YIELD, 0, 0),
    ],
)
def test_syscalls(text, opcode, arg1, count):
    result = parse_instruction_section(_image(text), "x.img")
    assert result[0].opcode is opcode
    assert result[0].arg1 == arg1
    assert result[0].num_operands == count


def test_empty_section_gives_empty_list():
    assert parse_instruction_section(_image(), "x.img") == []


def test_no_section_gives_empty_list():
    assert parse_instruction_section(["0 HLT"], "x.img") == []


def test_rejects_non_img_filename():
    with pytest.raises(ParseError, match="only supports .img files"):
        parse_instruction_section(_image("0 HLT"), "prog.g312")


@pytest.mark.parametrize(
    "text, message",
    [
        ("HLT", "Missing instruction line number"),
        ("4", "Missing mnemonic"),
        ("0 FOO 1", "Unknown mnemonic 'FOO'"),
        ("0 SET 1", "SET expects 2 operand"),
        ("0 PUSH", "PUSH expects 1 operand"),
        ("0 SYSCALL", "SYSCALL missing type"),
        ("0 SYSCALL PRN", "SYSCALL PRN missing argument"),
        ("0 SYSCALL BEEP", "Unknown SYSCALL type 'BEEP'"),
        ("-1 HLT", "Instruction PC cannot be negative"),
    ],
)
def test_errors(text, message):
    with pytest.raises(ParseError, match=message):
        parse_instruction_section(_image(text), "x.img")


def test_error_reports_line_number():
    with pytest.raises(ParseError) as info:
        parse_instruction_section(_image("0 HLT", "1 ZAP"), "x.img")
    assert info.value.line == 6
    assert str(info.value).startswith("Error L6:")