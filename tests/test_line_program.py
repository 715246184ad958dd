"""
Line-number program tests.

Each program is attached to a one-unit .debug_info whose root DIE names the
primary source file and compilation directory.
"""

import pytest

from dwarf_builder import (
    STANDARD_OPCODE_LENGTHS,
    DwarfUnit,
    LineProgramWriter,
    compile_debug_info,
    compile_unit_die,
    line_rows,
    uleb128,
)
from wasmsym.config import ResolverConfig
from wasmsym.dwarf.die_parser import DIEParser
from wasmsym.dwarf.exceptions import DwarfError, DwarfFormatError, UnexpectedEndOfData, UnsupportedVersion
from wasmsym.dwarf.line_program import FileEntry, LineProgram
from wasmsym.dwarf.sections import DebugSections


def run(data, config=None, comp_name='a.c', comp_dir='/build'):
    info, abbrev = compile_debug_info([DwarfUnit(compile_unit_die(comp_name, comp_dir=comp_dir))])
    units = DIEParser(DebugSections(debug_info=info, debug_abbrev=abbrev, debug_line=data)).parse()
    program = LineProgram(units[0], config)
    return program, program.run()


def row_tuples(sequence):
    return [(row.address, row.file_index, row.line, row.column, row.end_sequence) for row in sequence.rows]


@pytest.mark.line
def test_header_and_file_table():
    writer = LineProgramWriter(
        include_directories=['/inc', 'rel'],
        file_names=[('a.c', 0), ('b.h', 1), ('c.h', 2), ('/abs/d.c', 1)],
    )
    data = writer.build(line_rows([(0x10, 1, 1, 0), (0x20, None, None, None)]))
    program, _ = run(data)

    header = program.header
    assert header.version == 4
    assert header.line_base == -5
    assert header.line_range == 14
    assert header.opcode_base == 13
    assert header.standard_opcode_lengths == STANDARD_OPCODE_LENGTHS
    assert header.address_size == 4
    assert header.include_directories == ['/inc', 'rel']
    assert header.end == len(data)

    # File 0 is the unit's primary file before DWARF 5
    assert program.file_table[0] == FileEntry('a.c', '/build')
    assert [entry.path for entry in program.file_table] == [
        '/build/a.c', '/build/a.c', '/inc/b.h', 'rel/c.h', '/abs/d.c',
    ]


@pytest.mark.line
def test_basic_rows():
    writer = LineProgramWriter(file_names=[('a.c', 0), ('b.c', 0)])
    data = writer.build(line_rows([
        (0x10, 1, 5, 2),
        (0x14, 2, 6, 0),
        (0x20, None, None, None),
    ]))
    _, sequences = run(data)

    assert len(sequences) == 1
    assert row_tuples(sequences[0]) == [
        (0x10, 1, 5, 2, False),
        (0x14, 2, 6, 0, False),
        (0x20, 2, 6, 0, True),
    ]
    assert sequences[0].start == 0x10
    assert sequences[0].end == 0x20


@pytest.mark.line
def test_special_and_pc_opcodes():
    writer = LineProgramWriter(file_names=[('a.c', 0)])
    data = writer.build([
        ('set_address', 0x100),
        ('special', 0, 1),
        ('special', 3, 2),
        ('const_add_pc',),
        ('copy',),
        ('fixed_advance_pc', 0x10),
        ('copy',),
        ('advance_pc', 4),
        ('end_sequence',),
    ])
    _, sequences = run(data)
    assert [(row.address, row.line) for row in sequences[0].rows] == [
        (0x100, 2),
        (0x103, 4),
        (0x114, 4),
        (0x124, 4),
        (0x128, 4),
    ]


@pytest.mark.line
def test_minimum_instruction_length_scales_advances():
    writer = LineProgramWriter(file_names=[('a.c', 0)], minimum_instruction_length=4)
    data = writer.build([
        ('set_address', 0x10),
        ('copy',),
        ('advance_pc', 2),
        ('copy',),
        ('special', 1, 0),
        ('advance_pc', 1),
        ('end_sequence',),
    ])
    _, sequences = run(data)
    assert [row.address for row in sequences[0].rows] == [0x10, 0x18, 0x1c, 0x20]


@pytest.mark.line
def test_negate_stmt():
    writer = LineProgramWriter(file_names=[('a.c', 0)])
    data = writer.build([
        ('set_address', 0x10),
        ('copy',),
        ('negate_stmt',),
        ('advance_pc', 2),
        ('copy',),
        ('advance_pc', 2),
        ('end_sequence',),
    ])
    _, sequences = run(data)
    assert [row.is_statement for row in sequences[0].rows[:2]] == [True, False]


@pytest.mark.line
def test_sequences_sorted_and_monotonic():
    """Each sequence is sorted by address; sequences are ordered by start."""
    writer = LineProgramWriter(file_names=[('a.c', 0)])
    data = writer.build(line_rows([
        (0x200, 1, 10, 0),
        (0x210, 1, 11, 0),
        (0x220, None, None, None),
        (0x100, 1, 1, 0),
        (0x110, None, None, None),
    ]) + [
        ('set_address', 0x330), ('copy',),
        ('set_address', 0x320), ('advance_line', 1), ('copy',),
        ('set_address', 0x340), ('end_sequence',),
    ])
    _, sequences = run(data)

    assert [sequence.start for sequence in sequences] == [0x100, 0x200, 0x320]
    for sequence in sequences:
        addresses = [row.address for row in sequence.rows]
        assert addresses == sorted(addresses)
        assert sequence.rows[-1].end_sequence
        assert not any(row.end_sequence for row in sequence.rows[:-1])


@pytest.mark.line
def test_rows_at_same_address_keep_program_order():
    writer = LineProgramWriter(file_names=[('a.c', 0)])
    data = writer.build([
        ('set_address', 0x30), ('copy',),
        ('set_address', 0x20), ('advance_line', 1), ('copy',),
        ('set_address', 0x30), ('advance_line', 1), ('copy',),
        ('set_address', 0x40), ('end_sequence',),
    ])
    _, sequences = run(data)
    assert [(row.address, row.line) for row in sequences[0].rows] == [
        (0x20, 2), (0x30, 1), (0x30, 3), (0x40, 3),
    ]


@pytest.mark.line
def test_unterminated_sequence_is_dropped():
    writer = LineProgramWriter(file_names=[('a.c', 0)])
    data = writer.build([
        ('set_address', 0x10), ('copy',),
        ('set_address', 0x20), ('end_sequence',),
        ('set_address', 0x40), ('copy',),
    ])
    _, sequences = run(data)
    assert len(sequences) == 1
    assert sequences[0].end == 0x20


@pytest.mark.line
def test_dwarf5_entry_tables():
    writer = LineProgramWriter(
        version=5,
        include_directories=['/work', 'src'],
        file_names=[('main.rs', 1), ('/abs/x.rs', 0), ('lib.rs', 0)],
    )
    data = writer.build(line_rows([(0x10, 0, 3, 0), (0x18, None, None, None)]))
    program, sequences = run(data)

    assert program.header.version == 5
    assert program.header.address_size == 4
    assert [entry.path for entry in program.file_table] == ['src/main.rs', '/abs/x.rs', '/work/lib.rs']
    # File indices are 0-based in DWARF 5
    assert sequences[0].rows[0].file_index == 0


@pytest.mark.line
def test_define_file_extends_table():
    writer = LineProgramWriter(include_directories=['/gen'], file_names=[('a.c', 0)])
    data = writer.build([('define_file', 'gen.c', 1)] + line_rows([(0x10, 2, 1, 0), (0x20, None, None, None)]))
    program, _ = run(data)
    assert program.file_table[2].path == '/gen/gen.c'


@pytest.mark.line
def test_unknown_extended_opcode_is_skipped():
    """Unknown extended opcodes are skipped by their declared length."""
    writer = LineProgramWriter(file_names=[('a.c', 0)])
    data = writer.build([
        ('set_address', 0x10),
        ('raw', b'\x00\x03\x80\xaa\xbb'),
        ('copy',),
        ('advance_pc', 4),
        ('end_sequence',),
    ])
    _, sequences = run(data)
    assert [(row.address, row.line) for row in sequences[0].rows] == [(0x10, 1), (0x14, 1)]


@pytest.mark.line
def test_unknown_standard_opcode_discards_program():
    writer = LineProgramWriter(
        file_names=[('a.c', 0)],
        opcode_base=14,
        standard_opcode_lengths=STANDARD_OPCODE_LENGTHS + [1],
    )
    data = writer.build([
        ('set_address', 0x10),
        ('raw', b'\x0d' + uleb128(300)),
        ('copy',),
        ('advance_pc', 4),
        ('end_sequence',),
    ])
    with pytest.raises(DwarfFormatError):
        run(data)


@pytest.mark.line
def test_unsupported_version():
    data = LineProgramWriter(version=6, file_names=[('a.c', 0)]).build([])
    with pytest.raises(UnsupportedVersion) as exc_info:
        run(data)
    assert exc_info.value.end == len(data)


@pytest.mark.line
def test_disabled_version():
    data = LineProgramWriter(file_names=[('a.c', 0)]).build([])
    with pytest.raises(UnsupportedVersion):
        run(data, config=ResolverConfig(dwarf_versions=(5,)))


@pytest.mark.line
def test_program_longer_than_section():
    data = LineProgramWriter(file_names=[('a.c', 0)]).build(line_rows([(0x10, 1, 1, 0), (0x20, None, None, None)]))
    with pytest.raises(UnexpectedEndOfData):
        run(data[:-3])


@pytest.mark.line
def test_truncated_opcode():
    writer = LineProgramWriter(file_names=[('a.c', 0)])
    data = writer.build([
        ('set_address', 0x10), ('copy',),
        ('raw', b'\x00\x05\x02\x10'),  # DW_LNE_set_address cut short
    ])
    with pytest.raises(DwarfError):
        run(data)


@pytest.mark.line
def test_zero_line_range_is_rejected():
    data = LineProgramWriter(file_names=[('a.c', 0)], line_range=0).build([])
    with pytest.raises(DwarfFormatError):
        run(data)
