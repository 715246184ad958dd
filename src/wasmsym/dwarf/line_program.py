"""
Line-number program rows for one compilation unit.

pyelftools decodes the program header and runs the line state machine. This
module checks the header against the version allow-list, builds the unit's
file table, and groups the emitted rows into sequences. Each sequence is a
contiguous run of machine code closed by an end_sequence row whose address is
the exclusive end of the run.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from elftools.dwarf.lineprogram import LineProgram as ElfLineProgram

from wasmsym.config import ResolverConfig
from wasmsym.dwarf.die_parser import CompileUnit
from wasmsym.dwarf.dwarfinfo import DECODE_ERRORS, translate_error
from wasmsym.dwarf.exceptions import DwarfFormatError, UnexpectedEndOfData, UnsupportedVersion
from wasmsym.dwarf.reader import ByteReader
from wasmsym.utils.paths import join_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    """One entry of a line program's file table."""

    name: str
    directory: Optional[str] = None

    @property
    def path(self) -> str:
        return join_path(self.directory, self.name)


@dataclass(frozen=True)
class LineTableRow:
    """Snapshot of the line state machine registers."""

    address: int
    file_index: int
    line: int
    column: int
    is_statement: bool
    end_sequence: bool = False


@dataclass
class LineSequence:
    """Rows of one contiguous address run; the last row is the end_sequence row."""

    rows: list[LineTableRow]

    @property
    def start(self) -> int:
        return self.rows[0].address

    @property
    def end(self) -> int:
        return self.rows[-1].address


@dataclass
class LineProgramHeader:
    """Line program header fields the resolver uses."""

    offset: int
    end: int  # Offset just past this program
    version: int
    address_size: int
    offset_size: int
    minimum_instruction_length: int
    maximum_operations_per_instruction: int
    default_is_stmt: bool
    line_base: int
    line_range: int
    opcode_base: int
    standard_opcode_lengths: list[int]
    include_directories: list[str] = field(default_factory=list)


def _text(value) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value or ''


class LineProgram:
    """Rows of the line program a compilation unit points at.

    Args:
        unit: Decoded unit whose DW_AT_stmt_list selects the program; its
            name and comp_dir stand for file and directory 0 before DWARF 5
        config: Version allow-list
    """

    def __init__(self, unit: CompileUnit, config: Optional[ResolverConfig] = None):
        self.unit = unit
        self.offset = unit.stmt_list
        self.config = config or ResolverConfig()

        self.header: Optional[LineProgramHeader] = None
        self.file_table: list[FileEntry] = []
        self.sequences: list[LineSequence] = []
        self._program: Optional[ElfLineProgram] = None

    def parse_header(self) -> LineProgramHeader:
        """Decode the program header and build the file table.

        The length and version are read before pyelftools sees the program,
        so that versions outside the allow-list are never decoded.

        Raises:
            UnsupportedVersion: If the version is unknown or not enabled
            DwarfError: If the header is truncated or malformed
        """
        data = self.unit.sections.debug_line
        reader = ByteReader(data, section='.debug_line')
        reader.seek(self.offset)
        length, offset_size = reader.initial_length()
        end = reader.pos + length
        if end > len(data):
            raise UnexpectedEndOfData('.debug_line', self.offset, end - self.offset)
        version = ByteReader(data, reader.pos, end, '.debug_line').u16()
        if version not in (2, 3, 4, 5) or not self.config.supports_version(version):
            raise UnsupportedVersion('line program', version, self.offset, end)

        try:
            program = self.unit.dwarfinfo.line_program_for_CU(self.unit.elf_unit)
        except DECODE_ERRORS as e:
            raise translate_error(e, '.debug_line', self.offset) from e

        fields = program.header
        if fields['line_range'] == 0:
            raise DwarfFormatError(f"Line program at 0x{self.offset:x} has line_range 0")
        if fields['maximum_operations_per_instruction'] == 0:
            raise DwarfFormatError(f"Line program at 0x{self.offset:x} has "
                                   f"maximum_operations_per_instruction 0")

        header = LineProgramHeader(
            offset=self.offset,
            end=end,
            version=version,
            address_size=fields.get('address_size') or self.unit.header.address_size,
            offset_size=offset_size,
            minimum_instruction_length=fields['minimum_instruction_length'],
            maximum_operations_per_instruction=fields['maximum_operations_per_instruction'],
            default_is_stmt=bool(fields['default_is_stmt']),
            line_base=fields['line_base'],
            line_range=fields['line_range'],
            opcode_base=fields['opcode_base'],
            standard_opcode_lengths=list(fields['standard_opcode_lengths']),
            include_directories=[_text(d) for d in fields.get('include_directory') or ()],
        )

        self._program = program
        self.header = header
        self.file_table = self._file_table()
        return header

    def _file_table(self) -> list[FileEntry]:
        """File entries in index order, DW_LNE_define_file additions included."""
        files = [
            FileEntry(_text(entry.name), self._directory(entry.dir_index or 0))
            for entry in self._program.header.get('file_entry') or ()
        ]
        if self.header.version >= 5:
            return files
        # File 0 is the unit's primary source file before DWARF 5
        return [FileEntry(self.unit.name or '', self.unit.comp_dir)] + files

    def _directory(self, index: int) -> Optional[str]:
        directories = self.header.include_directories
        if self.header.version >= 5:
            return directories[index] if index < len(directories) else None
        if index == 0:
            return self.unit.comp_dir
        if index - 1 < len(directories):
            return directories[index - 1]
        return None

    def run(self) -> list[LineSequence]:
        """Execute the program and return its sequences sorted by start address.

        Raises:
            DwarfError: On any decoding error; no partial rows are kept
        """
        if self.header is None:
            self.parse_header()
        try:
            entries = self._program.get_entries()
        except DECODE_ERRORS as e:
            raise translate_error(e, '.debug_line', self.offset) from e

        sequences = []
        rows: list[LineTableRow] = []
        for entry in entries:
            state = entry.state
            if state is None:
                continue
            rows.append(LineTableRow(
                address=state.address,
                file_index=state.file,
                line=state.line,
                column=state.column,
                is_statement=bool(state.is_stmt),
                end_sequence=bool(state.end_sequence),
            ))
            if state.end_sequence:
                sequences.append(LineSequence(rows))
                rows = []

        if rows:
            logger.debug(f"Dropping {len(rows)} row(s) of an unterminated sequence "
                         f"in line program at 0x{self.offset:x}")

        for sequence in sequences:
            # Stable: later rows at the same address refine earlier ones.
            # The end_sequence row stays last.
            body = sorted(sequence.rows[:-1], key=lambda row: row.address)
            sequence.rows = body + sequence.rows[-1:]
        sequences.sort(key=lambda sequence: sequence.start)

        self.file_table = self._file_table()
        self.sequences = sequences
        logger.debug(f"Line program at 0x{self.offset:x}: {len(sequences)} sequence(s), "
                     f"{sum(len(s.rows) for s in sequences)} row(s)")
        return sequences
