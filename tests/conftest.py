"""
Pytest fixtures for wasmsym tests.

Provides synthetic modules built with dwarf_builder: a single unit matching
the basic resolution scenario, and helpers to turn sections into parsers and
indexes.
"""

import pytest

from dwarf_builder import (
    DwarfUnit,
    LineProgramWriter,
    build_parser,
    compile_debug_info,
    compile_unit_die,
    debug_sections,
    line_rows,
    subprogram,
    wasm_module,
)


@pytest.fixture
def scenario_sections():
    """One unit: rows 0x10 line 5, 0x20 line 7, end at 0x30; foo covers [0x10, 0x30)."""
    writer = LineProgramWriter(include_directories=['/src'], file_names=[('main.c', 1)])
    line = writer.build(line_rows([
        (0x10, 1, 5, 0),
        (0x20, 1, 7, 0),
        (0x30, None, None, None),
    ]))
    unit = DwarfUnit(compile_unit_die('main.c', children=[subprogram('foo', 0x10, 0x20)]))
    info, abbrev = compile_debug_info([unit])
    return debug_sections(info, abbrev, line)


@pytest.fixture
def scenario_index(scenario_sections):
    return build_parser(scenario_sections).build_index()


@pytest.fixture
def scenario_module(scenario_sections):
    """Module bytes carrying the scenario sections."""
    return wasm_module(scenario_sections)


@pytest.fixture
def module_file(tmp_path, scenario_module):
    path = tmp_path / "app.wasm"
    path.write_bytes(scenario_module)
    return path
