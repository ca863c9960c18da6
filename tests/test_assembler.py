import pytest

from y86tools.assembler import AssemblyError, Assembler, main
from y86tools.isa import Reg, Stat, find_instr
from y86tools.state import State
from y86tools.yis import run


def _execute(listing):
    state = State()
    state.m.load(listing.splitlines(keepends=True))
    _, stat = run(state, 1000)
    return state, stat


def test_irmovl_listing_line():
    listing = Assembler().assemble("  irmovl $4, %eax\n")
    assert listing == "  0x000: 30f004000000 |   irmovl $4, %eax\n"


def test_blank_line_prefix():
    assert Assembler().assemble("\n") == " " * 22 + "| \n"


def test_comment_line_printed_with_blank_prefix():
    assert Assembler().assemble("# hi\n") == " " * 22 + "| # hi\n"


def test_unterminated_last_line_is_not_assembled():
    assert Assembler().assemble("nop") == ""


def test_listing_has_one_line_per_source_line():
    source = "nop\n\n# c\nx: halt\n.pos 0x40\n.long 3\n"
    assert len(Assembler().assemble(source).splitlines()) == 6


def test_program_moves_register():
    source = "    irmovl $7, %eax\n    rrmovl %eax, %ecx\n    halt\n"
    state, stat = _execute(Assembler().assemble(source))
    assert stat == Stat.HLT
    assert state.r.get(Reg.EAX) == 7
    assert state.r.get(Reg.ECX) == 7


def test_call_and_return_through_stack():
    source = (
        "    .pos 0\n"
        "    irmovl Stack, %esp\n"
        "    call Func\n"
        "    halt\n"
        "Func:\n"
        "    irmovl $42, %ebx\n"
        "    ret\n"
        "    .pos 0x100\n"
        "Stack:\n"
    )
    asm = Assembler()
    state, stat = _execute(asm.assemble(source))
    assert stat == Stat.HLT
    assert state.r.get(Reg.EBX) == 42
    assert state.r.get(Reg.ESP) == 0x100 == asm.symbols["Stack"]


def test_jump_skips_code():
    source = "    jmp Skip\n    irmovl $1, %eax\nSkip: halt\n"
    state, stat = _execute(Assembler().assemble(source))
    assert stat == Stat.HLT
    assert state.r.get(Reg.EAX) == 0


def test_store_and_load_through_memory():
    source = (
        "    irmovl Data, %edx\n"
        "    irmovl $9, %eax\n"
        "    rmmovl %eax, 4(%edx)\n"
        "    mrmovl 4(%edx), %ebx\n"
        "    halt\n"
        "    .align 4\n"
        "Data: .long 0\n"
        "    .long 0\n"
    )
    asm = Assembler()
    state, _ = _execute(asm.assemble(source))
    assert state.r.get(Reg.EBX) == 9
    assert state.m.get_word(asm.symbols["Data"] + 4) == 9


def test_symbols_follow_instruction_sizes():
    asm = Assembler()
    asm.assemble("Start: nop\nEnd: halt\n")
    assert asm.symbols == {"Start": 0, "End": find_instr("nop").size}


def test_align_rounds_up():
    asm = Assembler()
    asm.assemble(".byte 1\n.align 4\nx: .long 5\n")
    assert asm.symbols["x"] > 0
    assert asm.symbols["x"] % 4 == 0


def test_long_data_round_trip():
    asm = Assembler()
    listing = asm.assemble(".pos 0x20\nData: .long 0x12345678\n")
    state = State()
    state.m.load(listing.splitlines())
    assert state.m.get_word(asm.symbols["Data"]) == 0x12345678


@pytest.mark.parametrize(
    "source, message",
    [
        ("foo nop\n", "Missing Colon"),
        ("jmp Nowhere\n", "Can't find label"),
        ("nop @\n", "Invalid line"),
        ("addl %eax %ebx\n", "Expecting Comma"),
        ("pushl 5\n", "Expecting Register ID"),
        (".pos foo\n", "Invalid Address"),
        (".align 0\n", "Invalid Alignment"),
        ("%eax\n", "Bad Instruction"),
        ("irmovl %eax, %ebx\n", "Number Expected"),
        ("mrmovl 4(5), %eax\n", "Expecting Register Id"),
        ("nop " * 12 + "\n", "Line too long"),
    ],
)
def test_errors(source, message):
    with pytest.raises(AssemblyError) as excinfo:
        Assembler().assemble(source)
    assert message in excinfo.value.errors[0]


def test_error_reports_line_number():
    with pytest.raises(AssemblyError) as excinfo:
        Assembler().assemble("nop\nfoo nop\n")
    assert excinfo.value.errors[0].startswith("Error on line 2: Missing Colon")


def test_second_pass_error_keeps_listing():
    with pytest.raises(AssemblyError) as excinfo:
        Assembler().assemble("jmp Nowhere\n")
    assert "jmp Nowhere" in excinfo.value.listing


def test_first_pass_error_has_empty_listing():
    with pytest.raises(AssemblyError) as excinfo:
        Assembler().assemble("nop\nfoo nop\n")
    assert excinfo.value.listing == ""


def test_verilog_output():
    listing = Assembler(vcode=True).assemble("nop\nhalt\n")
    lines = listing.splitlines()
    assert sum(line.startswith("//") for line in lines) == 2
    assert sum("mem[" in line for line in lines) == 2
    assert f"mem[1] = 8'h{find_instr('halt').code:02x};" in listing


def test_verilog_banked_output():
    listing = Assembler(vcode=True, block_factor=8).assemble("irmovl $1, %eax\n")
    assert "bank0[0]" in listing
    assert "bank1[0]" in listing
    assert "mem[" not in listing


def test_big_memory_prefix():
    assert Assembler(big_mem=True).assemble("nop\n").startswith("  0x0000:10")


def test_main_writes_yo_file(tmp_path):
    source = "    irmovl $3, %eax\n    halt\n"
    path = tmp_path / "prog.ys"
    path.write_text(source)
    assert main([str(path)]) == 0
    assert (tmp_path / "prog.yo").read_text() == Assembler().assemble(source)


def test_main_reports_errors(tmp_path, capsys):
    path = tmp_path / "bad.ys"
    path.write_text("foo nop\n")
    assert main([str(path)]) == 1
    assert "Error on line 1" in capsys.readouterr().err


def test_main_verilog_to_stdout(tmp_path, capsys):
    path = tmp_path / "prog.ys"
    path.write_text("nop\n")
    assert main(["-V", str(path)]) == 0
    assert "mem[0]" in capsys.readouterr().out


def test_main_rejects_unknown_blocking_factor(tmp_path):
    path = tmp_path / "prog.ys"
    path.write_text("nop\n")
    assert main(["-V3", str(path)]) == 1


def test_main_usage_for_wrong_extension(capsys):
    assert main(["prog.txt"]) == 0
    assert "Usage" in capsys.readouterr().out


def test_main_missing_input(tmp_path, capsys):
    assert main([str(tmp_path / "missing.ys")]) == 1
    assert "Can't open input file" in capsys.readouterr().err