import io

from y86tools.isa import IType, Reg, Stat, hpack
from y86tools.state import State
from y86tools.yis import main, run


PROGRAM = (
    "  0x000: 30f00a000000 | irmovl $10,%eax\n"
    "  0x006: 10           | halt\n"
)


def test_run_counts_steps_until_halt():
    state = State(64)
    state.m.contents[0] = hpack(IType.NOP, 0)
    state.m.contents[1] = hpack(IType.HALT, 0)
    steps, stat = run(state, 100, io.StringIO())
    assert stat == Stat.HLT
    assert steps == 2


def test_run_writes_errors_to_out():
    state = State(32)
    state.m.contents[0] = 0xF0
    out = io.StringIO()
    steps, stat = run(state, 10, out)
    assert (steps, stat) == (1, Stat.INS)
    assert "Invalid instruction f0" in out.getvalue()


def test_main_step_limit(tmp_path, capsys):
    path = tmp_path / "prog.yo"
    path.write_text(PROGRAM)
    assert main([str(path), "1"]) == 0
    out = capsys.readouterr().out
    assert "Stopped in 1 steps" in out
    assert "Status 'AOK'" in out


def test_main_usage(capsys):
    assert main([]) == 0
    assert "Usage:" in capsys.readouterr().out


def test_main_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "absent.yo")]) == 1
    assert "Can't open code file" in capsys.readouterr().err


def test_main_empty_file_exits(tmp_path, capsys):
    path = tmp_path / "empty.yo"
    path.write_text("| nothing here\n")
    assert main([str(path)]) == 1
    assert capsys.readouterr().out == "Exiting\n"


def test_main_reports_memory_changes(tmp_path, capsys):
    code = bytes([hpack(IType.IRMOVL, 0), hpack(Reg.NONE, Reg.EAX)]) + (0x55).to_bytes(4, "little")
    code += bytes([hpack(IType.RMMOVL, 0), hpack(Reg.EAX, Reg.NONE)]) + (0x40).to_bytes(4, "little")
    code += bytes([hpack(IType.HALT, 0)])
    path = tmp_path / "store.yo"
    path.write_text(f"  0x000: {code.hex()} | program\n")
    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert "0x0040:\t0x00000000\t0x00000055\n" in out