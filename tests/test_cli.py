import io
import sys

import pytest

import bfs


def set_stdin(monkeypatch, data: bytes):
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(data)))


def test_streaming_program_from_stdin(monkeypatch, capsysbinary):
    set_stdin(monkeypatch, b"++++++++[>++++++++<-]>+.")
    bfs.main([])
    assert capsysbinary.readouterr().out == b"A"


def test_stdin_is_shared_with_read(monkeypatch, capsysbinary):
    set_stdin(monkeypatch, b",z.")
    bfs.main([])
    assert capsysbinary.readouterr().out == b"z"


def test_source_file_reads_input_from_stdin(tmp_path, monkeypatch, capsysbinary):
    program = tmp_path / "echo.b"
    program.write_bytes(b",[.,] echo input until end")
    set_stdin(monkeypatch, b"hey")

    bfs.main([str(program), "--eof", "0"])
    assert capsysbinary.readouterr().out == b"hey"


def test_missing_source_file(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        bfs.main([str(tmp_path / "missing.b")])
    assert excinfo.value.code == 1
    assert "fatal: could not read source" in capsys.readouterr().err


def test_unmatched_loop_end_is_fatal(monkeypatch, capsys):
    set_stdin(monkeypatch, b"+]")
    with pytest.raises(SystemExit) as excinfo:
        bfs.main([])
    assert excinfo.value.code == 1
    assert capsys.readouterr().err == "fatal: unmatched loop end at instruction 1\n"


def test_nesting_limit_is_fatal(monkeypatch, capsys):
    set_stdin(monkeypatch, b"++[>++[-]<-]")
    with pytest.raises(SystemExit) as excinfo:
        bfs.main(["--max-nesting", "1"])
    assert excinfo.value.code == 1
    assert capsys.readouterr().err == "fatal: loop nesting exceeds 1\n"


def test_invalid_options():
    with pytest.raises(SystemExit) as excinfo:
        bfs.read_options(["--max-nesting", "0"])
    assert excinfo.value.code == 2

    with pytest.raises(SystemExit) as excinfo:
        bfs.read_options(["--eof", "1"])
    assert excinfo.value.code == 2


def test_dump_state(monkeypatch, capsys):
    set_stdin(monkeypatch, b"-<+++[")
    bfs.main(["--dump-state"])
    err = capsys.readouterr().err
    assert "cursor: -1\n" in err
    assert "open loops: 1\n" in err
    assert "instructions: 6\n" in err
    assert "cell -1: 3\n" in err
    assert "cell 0: 255\n" in err


def test_eof_sentinel_option(tmp_path, monkeypatch, capsysbinary):
    program = tmp_path / "read.b"
    program.write_bytes(b"+,.")
    set_stdin(monkeypatch, b"")

    bfs.main([str(program), "--eof", "-1"])
    assert capsysbinary.readouterr().out == b"\xff"

    assert bfs.read_options(["--eof", "-1"]).eof == bfs.EOF_SENTINEL
    assert bfs.read_options(["--eof", "unchanged"]).eof == bfs.EOF_UNCHANGED
