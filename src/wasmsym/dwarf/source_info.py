"""
Source info export.

Produces, per compilation unit, the source files it covers and the module
offsets each source line maps to, in the JSON layout browser devtools
source-map tooling consumes.
"""

import logging

from elftools.dwarf.enums import ENUM_DW_LANG

from wasmsym.dwarf.address_index import CompilationUnitInfo
from wasmsym.models import SourceFile, SourceResult, SourceUnit

logger = logging.getLogger(__name__)

DW_LANG_Rust = ENUM_DW_LANG['DW_LANG_Rust']


def unit_source_files(unit: CompilationUnitInfo, code_section_offset: int) -> list[SourceFile]:
    """Collect the line mappings of one unit grouped by file.

    Sequences starting at address 0 belong to code the linker discarded and
    are ignored. Rows with line 0 cannot be attributed to a source line.
    End-of-sequence rows are kept with the file and line of the row before
    them, marking where the mapped code ends.
    Lines and columns are made 0-based, except that Rust units keep the
    column as emitted.
    """
    is_rust = unit.language == DW_LANG_Rust
    files: dict[str, SourceFile] = {}  # Insertion ordered by first row

    for sequence in unit.sequences:
        if sequence.start == 0:
            continue
        for row in sequence.rows:
            path = unit.file_path(row.file_index)
            if path is None or row.line == 0:
                continue

            if row.column == 0:
                column = 0
            else:
                column = row.column if is_rust else row.column - 1

            source_file = files.get(path)
            if source_file is None:
                source_file = files[path] = SourceFile(file=path, language=unit.language)
            source_file.lines.append([code_section_offset + row.address, row.line - 1, column])

    for source_file in files.values():
        deduplicated = {}
        for entry in sorted(source_file.lines, key=lambda entry: entry[0]):
            deduplicated.setdefault(entry[0], entry)
        source_file.lines = list(deduplicated.values())

    return list(files.values())


def extract_source_info(units: list[CompilationUnitInfo], code_section_offset: int) -> SourceResult:
    """Build the source info document for a module.

    Args:
        units: Decoded compilation units
        code_section_offset: Module offset of the code section payload

    Returns:
        SourceResult with one SourceUnit per unit that maps at least one file
    """
    result = []
    for unit in units:
        files = unit_source_files(unit, code_section_offset)
        if not files:
            continue
        result.append(SourceUnit(
            name=unit.name or "",
            directory=unit.comp_dir or "",
            files=files,
        ))
    logger.debug(f"Source info covers {len(result)} unit(s)")
    return SourceResult(units=result)
