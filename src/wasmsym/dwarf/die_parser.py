"""
DIE (Debug Information Entry) parser for .debug_info.

Walks compilation units with pyelftools and turns them into DIE trees, then
extracts what address resolution needs from them: the line program offset,
the unit's name and compilation directory, and the address ranges of every
subprogram and inlined subroutine.
"""

import bisect
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from elftools.dwarf.compileunit import CompileUnit as ElfCompileUnit
from elftools.dwarf.dwarfinfo import DWARFInfo
from elftools.dwarf.ranges import BaseAddressEntry, RangeLists

from wasmsym.config import ResolverConfig
from wasmsym.dwarf.abbrev import AbbreviationEntry, AbbreviationTable, DwarfCode
from wasmsym.dwarf.dwarfinfo import DECODE_ERRORS, build_dwarfinfo, translate_error
from wasmsym.dwarf.exceptions import (
    DwarfError,
    DwarfFormatError,
    InvalidAbbreviation,
    UnexpectedEndOfData,
    UnresolvedReference,
    UnsupportedForm,
    UnsupportedVersion,
)
from wasmsym.dwarf.forms import CONSTANT_FORMS, AttributeValue, ValueKind, attribute_value
from wasmsym.dwarf.reader import ByteReader
from wasmsym.dwarf.sections import DebugSections

logger = logging.getLogger(__name__)

# DWARF 5 unit types (DW_UT_*)
DW_UT_compile = 0x01
DW_UT_type = 0x02
DW_UT_partial = 0x03
DW_UT_skeleton = 0x04
DW_UT_split_compile = 0x05
DW_UT_split_type = 0x06

FUNCTION_TAGS = ('DW_TAG_subprogram', 'DW_TAG_inlined_subroutine')
LINKAGE_NAME_ATTRIBUTES = ('DW_AT_linkage_name', 'DW_AT_MIPS_linkage_name')
ORIGIN_ATTRIBUTES = ('DW_AT_abstract_origin', 'DW_AT_specification')
MAX_ORIGIN_DEPTH = 16


@dataclass
class DIE:
    """One node of the debug-info tree."""

    offset: int  # Position in .debug_info, used as identity for references
    tag: DwarfCode
    attributes: dict[DwarfCode, AttributeValue]
    children: list['DIE'] = field(default_factory=list)
    parent_offset: Optional[int] = None

    def get(self, name: DwarfCode) -> Optional[AttributeValue]:
        return self.attributes.get(name)


@dataclass(frozen=True)
class UnitHeader:
    """Decoded compilation unit header."""

    offset: int  # Offset of the unit in .debug_info
    end: int  # Offset just past the unit
    version: int
    unit_type: int = DW_UT_compile
    address_size: int = 4
    offset_size: int = 4
    abbrev_offset: int = 0
    die_offset: int = 0  # Offset of the root DIE


@dataclass
class FunctionInfo:
    """Name and address range of a subprogram or inlined subroutine."""

    name: Optional[str]  # Raw, possibly mangled
    low_pc: int
    high_pc: int  # Exclusive
    depth: int = 0  # Inline nesting depth, 0 for subprograms
    offset: int = 0  # DIE offset

    def contains_address(self, address: int) -> bool:
        """Check if address is within this function's range."""
        return self.low_pc <= address < self.high_pc


class CompileUnit:
    """A decoded compilation unit with its DIE tree.

    Keeps the pyelftools unit alongside, which range lists and the line
    program are read through.
    """

    def __init__(self, header: UnitHeader, root: Optional[DIE], dies: dict[int, DIE],
                 sections: DebugSections, dwarfinfo: DWARFInfo,
                 elf_unit: Optional[ElfCompileUnit] = None):
        self.header = header
        self.root = root
        self.dies = dies
        self.sections = sections
        self.dwarfinfo = dwarfinfo
        self.elf_unit = elf_unit
        self.base_address = (self.attr_address(root, 'DW_AT_low_pc') if root else None) or 0

    @property
    def name(self) -> Optional[str]:
        return self.attr_string(self.root, 'DW_AT_name') if self.root else None

    @property
    def comp_dir(self) -> Optional[str]:
        return self.attr_string(self.root, 'DW_AT_comp_dir') if self.root else None

    @property
    def language(self) -> int:
        value = self.root.get('DW_AT_language') if self.root else None
        return value.value if value is not None and isinstance(value.value, int) else 0

    @property
    def stmt_list(self) -> Optional[int]:
        """Offset of this unit's line program in .debug_line."""
        value = self.root.get('DW_AT_stmt_list') if self.root else None
        if value is None or not isinstance(value.value, int):
            return None
        return value.value

    def iter_dies(self) -> Iterator[DIE]:
        """Yield every DIE of the unit in depth-first order."""
        stack = [self.root] if self.root else []
        while stack:
            die = stack.pop()
            yield die
            stack.extend(reversed(die.children))

    def attr_string(self, die: DIE, name: DwarfCode) -> Optional[str]:
        """Get a string attribute, or None if absent."""
        value = die.get(name)
        if value is None or value.kind != ValueKind.STRING:
            return None
        return value.value

    def attr_address(self, die: DIE, name: DwarfCode) -> Optional[int]:
        """Get an address attribute, or None if absent."""
        value = die.get(name)
        if value is None or value.kind != ValueKind.ADDRESS:
            return None
        return value.value

    def pc_ranges(self, die: DIE) -> list[tuple[int, int]]:
        """Get the [low, high) address ranges covered by a DIE.

        Uses DW_AT_low_pc/DW_AT_high_pc when present, otherwise DW_AT_ranges.
        Missing or unresolvable attributes give an empty list.
        """
        low_pc = self.attr_address(die, 'DW_AT_low_pc')
        high_attr = die.get('DW_AT_high_pc')
        if low_pc is not None and high_attr is not None:
            # high_pc in a constant class form is a length, not an address
            if high_attr.form in CONSTANT_FORMS:
                high_pc = low_pc + high_attr.value
            else:
                high_pc = self.attr_address(die, 'DW_AT_high_pc')
                if high_pc is None:
                    return []
            return [(low_pc, high_pc)] if high_pc > low_pc else []

        ranges_attr = die.get('DW_AT_ranges')
        if ranges_attr is not None and ranges_attr.kind in (ValueKind.OFFSET, ValueKind.UNSIGNED):
            try:
                ranges = self.range_list(ranges_attr.value)
            except DwarfError as e:
                logger.debug(f"DW_AT_ranges of DIE 0x{die.offset:x}: {e}")
                return []
            return [(low, high) for low, high in ranges if high > low]

        return []

    def range_list(self, offset: int) -> list[tuple[int, int]]:
        """Decode the range list at ``offset``.

        DWARF 2-4 lists live in .debug_ranges, DWARF 5 lists in
        .debug_rnglists. Offset-relative entries are based on the unit's
        low_pc until a base address entry replaces it.

        Raises:
            UnresolvedReference: If the list is outside its section
            DwarfError: If the list cannot be decoded
        """
        if self.header.version >= 5:
            section = self.dwarfinfo.debug_rnglists_sec
        else:
            section = self.dwarfinfo.debug_ranges_sec
        if offset >= section.size:
            raise UnresolvedReference(section.name, offset)

        lists = RangeLists(section.stream, self.elf_unit.structs, self.header.version, self.dwarfinfo)
        try:
            entries = lists.get_range_list_at_offset(offset, cu=self.elf_unit)
        except DECODE_ERRORS as e:
            raise translate_error(e, section.name, offset) from e

        base = self.base_address
        ranges = []
        for entry in entries:
            if isinstance(entry, BaseAddressEntry):
                base = entry.base_address
            elif entry.is_absolute:
                ranges.append((entry.begin_offset, entry.end_offset))
            else:
                ranges.append((base + entry.begin_offset, base + entry.end_offset))
        return ranges


class DIEParser:
    """Parser for the .debug_info unit sequence.

    Decodes every compilation unit into a DIE tree. A unit that fails to
    decode is logged and skipped; the rest of the section is still parsed.
    All DIEs are indexed by offset so references can cross unit boundaries.
    """

    def __init__(self, sections: DebugSections, config: Optional[ResolverConfig] = None,
                 dwarfinfo: Optional[DWARFInfo] = None):
        self.sections = sections
        self.config = config or ResolverConfig()
        self.dwarfinfo = dwarfinfo or build_dwarfinfo(sections)
        self.abbreviations = AbbreviationTable(self.dwarfinfo)
        self.dies: dict[int, DIE] = {}  # .debug_info offset -> DIE
        self.units: list[CompileUnit] = []
        self.skipped_units = 0
        self._unit_offsets: list[int] = []

    def parse(self) -> list[CompileUnit]:
        """Decode all compilation units.

        Unit boundaries are read here rather than by pyelftools' iter_CUs so
        that a unit with an unknown version or a corrupt DIE can be skipped
        without losing the units after it.

        Returns:
            Successfully decoded units in section order

        Raises:
            DwarfError: If not even the first unit header can be read
        """
        data = self.sections.debug_info
        offset = 0
        while offset < len(data):
            try:
                header = read_unit_header(data, offset)
            except UnsupportedVersion as e:
                logger.warning(f"Skipping compilation unit: {e}")
                self.skipped_units += 1
                offset = e.end
                continue
            except DwarfError as e:
                if offset == 0:
                    raise
                logger.warning(f"Unreadable unit header at 0x{offset:x}, stopping: {e}")
                break

            offset = header.end
            if not self.config.supports_version(header.version):
                logger.warning(f"Skipping compilation unit at 0x{header.offset:x}: "
                               f"DWARF version {header.version} not enabled")
                self.skipped_units += 1
                continue
            if header.unit_type in (DW_UT_type, DW_UT_split_type):
                continue

            try:
                unit = self.parse_unit(header)
            except DwarfError as e:
                logger.warning(f"Skipping corrupt compilation unit at 0x{header.offset:x}: {e}")
                self.skipped_units += 1
                continue
            self.units.append(unit)

        self._unit_offsets = [unit.header.offset for unit in self.units]
        logger.debug(f"Decoded {len(self.units)} compilation unit(s), {len(self.dies)} DIEs")
        return self.units

    def parse_unit(self, header: UnitHeader) -> CompileUnit:
        """Decode the DIE tree of one unit.

        pyelftools yields the unit's DIEs in section order, null entries
        included. Children are attached with an explicit stack of open
        parents; a null entry closes the innermost one.
        """
        if header.address_size not in (4, 8):
            raise DwarfFormatError(f"Unsupported address size {header.address_size} "
                                   f"in unit at 0x{header.offset:x}")
        abbreviations = self.abbreviations.get_table(header.abbrev_offset)
        if header.die_offset >= header.end:
            return CompileUnit(header, None, {}, self.sections, self.dwarfinfo)

        try:
            elf_unit = self.dwarfinfo.get_CU_at(header.offset)
        except DECODE_ERRORS as e:
            raise translate_error(e, '.debug_info', header.offset) from e

        dies: dict[int, DIE] = {}
        roots: list[DIE] = []
        stack: list[DIE] = []
        position = header.die_offset  # Start of the DIE pyelftools decodes next

        try:
            for entry in elf_unit.iter_DIEs():
                position = entry.offset + entry.size
                if entry.is_null():
                    if stack:
                        stack.pop()
                    continue

                attributes = {}
                for name, attribute in entry.attributes.items():
                    value = attribute_value(attribute, header.offset)
                    if value is None:
                        logger.debug(f"Attribute {name} of DIE 0x{entry.offset:x}: "
                                     f"{UnresolvedReference(str(attribute.form), attribute.raw_value)}")
                        continue
                    attributes[name] = value

                die = DIE(
                    offset=entry.offset,
                    tag=entry.tag,
                    attributes=attributes,
                    parent_offset=stack[-1].offset if stack else None,
                )
                dies[die.offset] = die
                if stack:
                    stack[-1].children.append(die)
                else:
                    roots.append(die)
                if entry.has_children:
                    stack.append(die)
        except KeyError:
            raise self._lookup_failure(header, abbreviations, elf_unit, position) from None
        except DECODE_ERRORS as e:
            raise translate_error(e, '.debug_info', position) from e

        self.dies.update(dies)
        return CompileUnit(header, roots[0] if roots else None, dies, self.sections,
                           self.dwarfinfo, elf_unit)

    def _lookup_failure(self, header: UnitHeader, abbreviations: dict[int, AbbreviationEntry],
                        elf_unit: ElfCompileUnit, position: int) -> DwarfError:
        """Explain a failed table lookup while decoding the DIE at ``position``.

        pyelftools reports both an abbreviation code missing from the unit's
        table and a form it has no decoder for as a bare KeyError.
        """
        reader = ByteReader(self.sections.debug_info, position, header.end, '.debug_info')
        code = reader.uleb128()
        abbrev = abbreviations.get(code)
        if abbrev is None:
            return InvalidAbbreviation(code, position)
        for spec in abbrev.attributes:
            if spec.form not in elf_unit.structs.Dwarf_dw_form:
                return UnsupportedForm(spec.form, position)
        return DwarfFormatError(f"Undecodable DIE at offset 0x{position:x}")

    def function_name(self, unit: CompileUnit, die: DIE) -> Optional[str]:
        """Get the raw name of a function DIE.

        Linkage names are preferred since they demangle to full paths.
        Inlined subroutines and out-of-line definitions carry their names on
        the DIE referenced by DW_AT_abstract_origin / DW_AT_specification.
        """
        plain_name = None
        current = die
        for _ in range(MAX_ORIGIN_DEPTH):
            for attr in LINKAGE_NAME_ATTRIBUTES:
                name = unit.attr_string(current, attr)
                if name:
                    return name
            if plain_name is None:
                plain_name = unit.attr_string(current, 'DW_AT_name')

            origin = None
            for attr in ORIGIN_ATTRIBUTES:
                value = current.get(attr)
                if value is not None and value.kind == ValueKind.REFERENCE:
                    origin = self.dies.get(value.value)
                    if origin is None:
                        logger.debug(f"{attr} of DIE 0x{current.offset:x} points to "
                                     f"unknown DIE 0x{value.value:x}")
                    break
            if origin is None:
                break
            unit = self.unit_for_offset(origin.offset) or unit
            current = origin
        return plain_name

    def unit_for_offset(self, offset: int) -> Optional[CompileUnit]:
        # Units are appended in section order
        index = bisect.bisect_right(self._unit_offsets, offset) - 1
        if index >= 0 and offset < self.units[index].header.end:
            return self.units[index]
        return None

    def collect_functions(self, unit: CompileUnit) -> list[FunctionInfo]:
        """Extract subprogram and inlined subroutine ranges of a unit.

        Returns:
            FunctionInfo per contiguous range, in tree order
        """
        functions = []
        if unit.root is None:
            return functions

        # (die, inline depth of the nearest enclosing function or -1)
        stack = [(unit.root, -1)]
        while stack:
            die, depth = stack.pop()
            child_depth = depth
            if die.tag in FUNCTION_TAGS:
                child_depth = depth + 1 if die.tag == 'DW_TAG_inlined_subroutine' else 0
                ranges = unit.pc_ranges(die)
                if ranges:
                    name = self.function_name(unit, die)
                    for low_pc, high_pc in ranges:
                        functions.append(FunctionInfo(
                            name=name,
                            low_pc=low_pc,
                            high_pc=high_pc,
                            depth=child_depth,
                            offset=die.offset,
                        ))
            stack.extend((child, child_depth) for child in reversed(die.children))

        return functions


def read_unit_header(data: bytes, offset: int) -> UnitHeader:
    """Read the bounds and layout of the unit at ``offset`` of .debug_info.

    Raises:
        UnsupportedVersion: For versions whose header layout is unknown; its
            ``end`` attribute is the offset of the next unit
        UnexpectedEndOfData: If the header or unit is truncated
    """
    reader = ByteReader(data, offset, section='.debug_info')
    length, offset_size = reader.initial_length()
    end = reader.pos + length
    if end > len(data):
        raise UnexpectedEndOfData('.debug_info', offset, end - offset)
    reader = ByteReader(data, reader.pos, end, '.debug_info')

    version = reader.u16()
    if version not in (2, 3, 4, 5):
        raise UnsupportedVersion('compilation unit', version, offset, end)

    unit_type = DW_UT_compile
    if version >= 5:
        unit_type = reader.u8()
        address_size = reader.u8()
        abbrev_offset = reader.offset(offset_size)
        if unit_type in (DW_UT_skeleton, DW_UT_split_compile):
            reader.skip(8)  # dwo_id
        elif unit_type in (DW_UT_type, DW_UT_split_type):
            reader.skip(8 + offset_size)  # type_signature, type_offset
    else:
        abbrev_offset = reader.offset(offset_size)
        address_size = reader.u8()

    return UnitHeader(
        offset=offset,
        end=end,
        version=version,
        unit_type=unit_type,
        address_size=address_size,
        offset_size=offset_size,
        abbrev_offset=abbrev_offset,
        die_offset=reader.pos,
    )
