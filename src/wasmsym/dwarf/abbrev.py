"""
Abbreviation tables of .debug_abbrev.

Declarations are decoded with pyelftools' abbreviation struct. It names tags,
attributes and forms from the DWARF tables and keeps codes it does not know
(producer extensions) as plain integers, so unknown attributes never stop
the known ones from decoding.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional, Union

from elftools.common.utils import struct_parse
from elftools.dwarf.dwarfinfo import DWARFInfo

from wasmsym.dwarf.dwarfinfo import DECODE_ERRORS, translate_error
from wasmsym.dwarf.exceptions import UnresolvedReference

logger = logging.getLogger(__name__)

# Name or opaque numeric code
DwarfCode = Union[str, int]


class AttributeSpec(NamedTuple):
    """One (attribute, form) pair of an abbreviation."""

    name: DwarfCode
    form: DwarfCode
    implicit_const: Optional[int] = None  # Only for DW_FORM_implicit_const


@dataclass(frozen=True)
class AbbreviationEntry:
    """Decoding recipe for DIEs that use one abbreviation code."""

    code: int
    tag: DwarfCode
    has_children: bool
    attributes: tuple[AttributeSpec, ...]


class AbbreviationTable:
    """Cache of abbreviation tables, keyed by .debug_abbrev offset.

    Codes are only unique within one table, so each unit looks its DIEs up in
    the table its header points at.
    """

    def __init__(self, dwarfinfo: DWARFInfo):
        self.dwarfinfo = dwarfinfo
        self._tables: dict[int, dict[int, AbbreviationEntry]] = {}

    def get_table(self, offset: int) -> dict[int, AbbreviationEntry]:
        """Get the abbreviation table at ``offset``, decoding it on first use.

        Args:
            offset: Offset into .debug_abbrev from a unit header

        Returns:
            Mapping of abbreviation code to AbbreviationEntry
        """
        table = self._tables.get(offset)
        if table is None:
            table = parse_abbreviations(self.dwarfinfo, offset)
            self._tables[offset] = table
        return table


def parse_abbreviations(dwarfinfo: DWARFInfo, offset: int) -> dict[int, AbbreviationEntry]:
    """Decode the abbreviation table at ``offset``; a zero code ends it.

    Raises:
        UnresolvedReference: If ``offset`` is outside .debug_abbrev
        UnexpectedEndOfData: If the table runs past the end of the section
    """
    section = dwarfinfo.debug_abbrev_sec
    if offset >= section.size:
        raise UnresolvedReference('.debug_abbrev', offset)

    structs = dwarfinfo.structs
    stream = section.stream
    stream.seek(offset)

    table = {}
    try:
        while True:
            code = struct_parse(structs.the_Dwarf_uleb128, stream)
            if code == 0:
                break
            declaration = struct_parse(structs.Dwarf_abbrev_declaration, stream)
            attributes = tuple(
                AttributeSpec(spec.name, spec.form, spec.get('value'))
                for spec in declaration['attr_spec']
            )
            if code in table:
                logger.debug(f"Abbreviation code {code} redefined in table at 0x{offset:x}")
            table[code] = AbbreviationEntry(
                code=code,
                tag=declaration['tag'],
                has_children=declaration['children_flag'] == 'DW_CHILDREN_yes',
                attributes=attributes,
            )
    except DECODE_ERRORS as e:
        raise translate_error(e, '.debug_abbrev', offset) from e

    return table
