import pytest

from gtusim.assembler import (
    AssemblyError,
    Assembler,
    is_number,
    is_valid_symbol,
    main,
    trim_and_remove_comments,
)
from gtusim.instruction import OpCode
from gtusim.memory import Memory
from gtusim.parser import parse_instruction_section

PROGRAM = [
    "# sample program",
    "Begin Data Section",
    "0 0",
    "LIMIT 7",
    "counter@100 LIMIT",
    "End Data Section",
    "",
    "Begin Instruction Section",
    "START:",
    "SET 5, counter",
    "0 CPY counter 101 ; ADD counter -1",
    "DONE:",
    "JIF counter DONE",
    "SYSCALL prn counter",
    "HLT",
    "End Instruction Section",
]


def wrap_instructions(*body):
    return ["Begin Instruction Section", *body, "End Instruction Section"]


def wrap_data(*body):
    return ["Begin Data Section", *body, "End Data Section"]


def test_trim_and_remove_comments():
    assert trim_and_remove_comments("  SET 1 2  # note") == "SET 1 2"
    assert trim_and_remove_comments("# only comment") == ""


@pytest.mark.parametrize("text", ["42", "-7", "+3", "0"])
def test_is_number_accepts(text):
    assert is_number(text) is True


@pytest.mark.parametrize("text", ["", "-", "4a", "abc", "1 "])
def test_is_number_rejects(text):
    assert is_number(text) is False


@pytest.mark.parametrize("text", ["_a1", "Loop", "x"])
def test_is_valid_symbol_accepts(text):
    assert is_valid_symbol(text) is True


@pytest.mark.parametrize("text", ["", "1a", "a-b", "a@b"])
def test_is_valid_symbol_rejects(text):
    assert is_valid_symbol(text) is False


def test_assemble_full_program():
    output = Assembler().assemble(PROGRAM)
    assert output == [
        "# sample program",
        "Begin Data Section",
        "0 0",
        "100 7",
        "End Data Section",
        "",
        "Begin Instruction Section",
        "0 SET 5 100",
        "1 CPY 100 101",
        "2 ADD 100 -1",
        "3 JIF 100 3",
        "4 SYSCALL prn 100",
        "5 HLT",
        "End Instruction Section",
    ]


def test_symbols_collected():
    assembler = Assembler()
    assembler.assemble(PROGRAM)
    assert assembler.memory_labels == {"counter": 100}
    assert assembler.constants == {"LIMIT": 7, "START": 0, "DONE": 3}


def test_output_parses_as_image():
    output = Assembler().assemble(PROGRAM)
    instructions = parse_instruction_section(output, "prog.img")
    assert [i.opcode for i in instructions] == [
        OpCode.SET,
        OpCode.CPY,
        OpCode.ADD,
        OpCode.JIF,
        OpCode.SYSCALL_PRN,
        OpCode.HLT,
    ]
    assert instructions[0].arg2 == 100
    memory = Memory(200)
    assert memory.load_data_section(output) is True
    assert memory.read(100) == 7


def test_instruction_numbers_ignore_given_numbers():
    output = Assembler().assemble(wrap_instructions("7 HLT", "9 RET"))
    assert output[1:3] == ["0 HLT", "1 RET"]


def test_reassembly_resets_symbols():
    assembler = Assembler()
    assembler.assemble(PROGRAM)
    assembler.assemble(wrap_instructions("HLT"))
    assert assembler.constants == {}
    assert assembler.memory_labels == {}


def test_memory_label_logged():
    import io

    log = io.StringIO()
    Assembler(log=log).assemble(wrap_data("counter@100 3"))
    assert "Memory label: counter @ 100" in log.getvalue()


@pytest.mark.parametrize(
    "lines, pattern",
    [
        (wrap_instructions("SET 1 missing"), "Undefined symbol 'missing'"),
        (wrap_instructions("FOO 1 2"), "Unknown mnemonic 'FOO'"),
        (wrap_instructions("SET 1"), "Mnemonic 'SET' expects 2 args, got 1"),
        (wrap_instructions("SYSCALL"), "SYSCALL missing subtype"),
        (wrap_instructions("SYSCALL BOOM"), "Unknown SYSCALL subtype 'BOOM'"),
        (wrap_instructions("SYSCALL YIELD 3"), "Mnemonic 'SYSCALL YIELD' expects 0 args, got 1"),
        (["HLT"], "outside of any section"),
        (wrap_data("5"), r"\(Data\): Invalid format"),
        (wrap_data("1bad@10 5"), "Invalid memory label format"),
        (wrap_data("a-b 5"), r"\(Data\): Invalid format\."),
        (wrap_data("10 nothing"), "Undefined symbol 'nothing'"),
    ],
)
def test_assembly_errors(lines, pattern):
    with pytest.raises(AssemblyError, match=pattern):
        Assembler().assemble(lines)


def test_error_reports_line_number():
    with pytest.raises(AssemblyError) as info:
        Assembler().assemble(wrap_instructions("HLT", "NOPE"))
    assert info.value.line == 3
    assert str(info.value).startswith("Error L3:")


def test_symbols_header_contents():
    assembler = Assembler()
    assembler.assemble(
        wrap_data("OS_SYSCALL_DISPATCHER 50", "LIMIT 7", "counter@100 1")
    )
    header = assembler.symbols_header()
    assert header.startswith("// Auto-generated by GTU Assembler - DO NOT EDIT MANUALLY\n")
    assert "#define counter 100\n" in header
    assert "#define OS_SYSCALL_DISPATCHER 50\n" in header
    assert "#define SYMBOL_LIMIT 7\n" in header
    assert "SYMBOL_OS_SYSCALL_DISPATCHER" not in header
    assert header.endswith("#endif // ASSEMBLED_SYMBOLS_H\n")


def test_main_writes_image_and_header(tmp_path, capsys):
    source = tmp_path / "prog.g312"
    source.write_text("\n".join(PROGRAM) + "\n")
    assert main([str(source)]) == 0
    image = (tmp_path / "prog.img").read_text().splitlines()
    assert image == Assembler().assemble(PROGRAM)
    header = (tmp_path / "prog_symbols.h").read_text()
    assert "#define counter 100" in header
    assert "Assembly successful" in capsys.readouterr().out


def test_main_explicit_output_names(tmp_path):
    source = tmp_path / "prog.g312"
    source.write_text("\n".join(wrap_instructions("HLT")) + "\n")
    out = tmp_path / "out.img"
    header = tmp_path / "syms.h"
    assert main([str(source), str(out), str(header)]) == 0
    assert out.read_text().splitlines()[1] == "0 HLT"
    assert header.exists()


def test_main_usage_error(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_missing_input(tmp_path, capsys):
    assert main([str(tmp_path / "absent.g312")]) == 1
    assert "Could not open input file" in capsys.readouterr().err


def test_main_assembly_error(tmp_path, capsys):
    source = tmp_path / "bad.g312"
    source.write_text("\n".join(wrap_instructions("BOGUS")) + "\n")
    assert main([str(source)]) == 1
    assert "Unknown mnemonic 'BOGUS'" in capsys.readouterr().err