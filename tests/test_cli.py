"""
Command line interface tests.
"""

import io
import json

import pytest

from wasmsym.cli.main import build_config, create_parser, main

CODE_OFFSET = 13


def run_cli(capsys, *argv):
    with pytest.raises(SystemExit) as exc_info:
        main(list(argv))
    return exc_info.value.code, capsys.readouterr().out


@pytest.mark.cli
def test_dump(capsys, module_file):
    code, out = run_cli(capsys, "dump", str(module_file))
    assert code == 0
    document = json.loads(out)
    assert document["units"][0]["name"] == "main.c"
    assert document["units"][0]["files"][0]["lines"] == [
        [CODE_OFFSET + 0x10, 4, 0], [CODE_OFFSET + 0x20, 6, 0], [CODE_OFFSET + 0x30, 6, 0],
    ]


@pytest.mark.cli
def test_dump_from_stdin(capsys, monkeypatch, scenario_module):
    monkeypatch.setattr("sys.stdin", io.TextIOWrapper(io.BytesIO(scenario_module)))
    code, out = run_cli(capsys, "dump")
    assert code == 0
    assert json.loads(out)["units"][0]["files"][0]["file"] == "/src/main.c"


@pytest.mark.cli
def test_dump_error_document(capsys, tmp_path):
    path = tmp_path / "bad.wasm"
    path.write_bytes(b"\x7fELF\x01\x00\x00\x00")
    code, out = run_cli(capsys, "dump", str(path))
    assert code == 1
    document = json.loads(out)
    assert list(document) == ["error"]
    assert "magic" in document["error"]


@pytest.mark.cli
def test_dump_missing_file(capsys, tmp_path):
    code, out = run_cli(capsys, "dump", str(tmp_path / "missing.wasm"))
    assert code == 1
    assert "not found" in json.loads(out)["error"]


@pytest.mark.cli
def test_resolve(capsys, module_file):
    code, out = run_cli(capsys, "resolve", str(module_file), "0x10", "0x25", "5")
    assert code == 0
    frames = [json.loads(line) for line in out.splitlines()]
    assert frames[0] == {
        "address": 0x10, "file": "/src/main.c", "line": 5, "column": 0,
        "function": "foo", "resolved": True,
    }
    assert frames[1]["line"] == 7
    assert frames[2] == {
        "address": 5, "file": None, "line": None, "column": None,
        "function": None, "resolved": False,
    }


@pytest.mark.cli
def test_resolve_module_offsets(capsys, module_file):
    code, out = run_cli(capsys, "resolve", "--module-offsets", str(module_file), str(CODE_OFFSET + 0x20))
    assert code == 0
    frame = json.loads(out)
    assert frame["address"] == CODE_OFFSET + 0x20
    assert frame["line"] == 7


@pytest.mark.cli
def test_invalid_address(capsys, module_file):
    with pytest.raises(SystemExit) as exc_info:
        main(["resolve", str(module_file), "main"])
    assert exc_info.value.code == 2


@pytest.mark.cli
def test_invalid_dwarf_versions(capsys, module_file):
    with pytest.raises(SystemExit) as exc_info:
        main(["--dwarf-versions", "x", "dump", str(module_file)])
    assert exc_info.value.code == 2


@pytest.mark.cli
def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv("WASMSYM_DEMANGLE", "1")
    monkeypatch.delenv("WASMSYM_SKIP_DEAD_CODE", raising=False)
    args = create_parser().parse_args(
        ["--no-demangle", "--keep-dead-code", "--dwarf-versions", "4", "dump"]
    )
    config = build_config(args)
    assert not config.demangle
    assert not config.skip_dead_code
    assert config.dwarf_versions == (4,)
