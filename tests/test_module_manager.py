"""
Module manager tests.

Module offsets are converted to code section relative addresses before
lookup; the scenario module's code section payload starts at offset 13.
"""

import pytest

from dwarf_builder import wasm_module
from wasmsym.module.exceptions import InvalidMagic, MissingCodeSection
from wasmsym.module.module_manager import ModuleManager

CODE_OFFSET = 13


@pytest.fixture
def manager(scenario_module):
    manager = ModuleManager()
    manager.on_module_loaded("app.wasm", scenario_module)
    return manager


@pytest.mark.module
def test_module_loaded(manager):
    module = manager.get_module_by_name("APP.wasm")
    assert module.name == "app.wasm"
    assert module.code_section_offset == CODE_OFFSET
    assert module.has_debug_info
    assert list(manager.get_modules_with_debug_info()) == [module]


@pytest.mark.module
def test_resolve_module_offset(manager):
    location = manager.resolve_module_offset("app.wasm", CODE_OFFSET + 0x25)
    assert location.address == CODE_OFFSET + 0x25
    assert location.line == 7
    assert location.function == "foo"

    assert manager.resolve_module_offset("app.wasm", CODE_OFFSET + 0x30) is None
    assert manager.resolve_module_offset("app.wasm", 2) is None
    assert manager.resolve_module_offset("other.wasm", CODE_OFFSET + 0x10) is None


@pytest.mark.module
def test_resolve_frames(manager):
    frames = [
        ("app.wasm", CODE_OFFSET + 0x10),
        ("missing.wasm", 0x10),
        ("app.wasm", CODE_OFFSET + 0x20),
        ("app.wasm", CODE_OFFSET + 0x10),
    ]
    results = manager.resolve_frames(frames)
    assert [r.line if r else None for r in results] == [5, None, 7, 5]


@pytest.mark.module
def test_module_without_debug_info():
    manager = ModuleManager()
    module = manager.on_module_loaded("plain.wasm", wasm_module())
    assert not module.has_debug_info
    assert manager.resolve_module_offset("plain.wasm", 0x20) is None
    assert list(manager.get_modules_with_debug_info()) == []


@pytest.mark.module
def test_load_file(module_file):
    manager = ModuleManager()
    module = manager.load_file(module_file)
    assert module.name == "app.wasm"
    assert module.path == str(module_file)


@pytest.mark.module
def test_invalid_modules_are_rejected():
    manager = ModuleManager()
    with pytest.raises(InvalidMagic):
        manager.on_module_loaded("bad.wasm", b"not a module")
    with pytest.raises(MissingCodeSection):
        manager.on_module_loaded("nocode.wasm", wasm_module(code=None))
    assert list(manager.get_all_modules()) == []


@pytest.mark.module
def test_unload(manager, caplog):
    manager.on_module_unloaded("app.wasm")
    assert manager.get_module_by_name("app.wasm") is None
    manager.on_module_unloaded("app.wasm")
    assert "Unloaded unknown module app.wasm" in caplog.text
