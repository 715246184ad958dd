"""
DWARF parser for WebAssembly modules.

WebAssembly producers store DWARF sections as custom sections of the module.
This parser locates them, decodes every compilation unit and its line
program, and builds the address index used for symbolization.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from wasmsym.config import ResolverConfig
from wasmsym.dwarf.address_index import AddressIndex, CompilationUnitInfo
from wasmsym.dwarf.die_parser import CompileUnit, DIEParser
from wasmsym.dwarf.exceptions import DwarfError, MissingSections
from wasmsym.dwarf.line_program import LineProgram
from wasmsym.dwarf.sections import DebugSections, RawSection
from wasmsym.module.wasm import WasmModule, parse_module

logger = logging.getLogger(__name__)


class WasmDwarfParser:
    """Parser for DWARF debug information in WebAssembly modules.

    Accepts either a module (path or bytes) or, through ``from_sections``,
    custom sections a host has already extracted.
    """

    def __init__(self, module: str | Path | bytes | WasmModule,
                 config: Optional[ResolverConfig] = None):
        self.source = module
        self.config = config or ResolverConfig()
        self.module: Optional[WasmModule] = module if isinstance(module, WasmModule) else None
        self.sections: Optional[DebugSections] = None
        self.units: Optional[list[CompilationUnitInfo]] = None
        self.die_parser: Optional[DIEParser] = None

    @classmethod
    def from_sections(cls, sections: Iterable[RawSection],
                      config: Optional[ResolverConfig] = None) -> 'WasmDwarfParser':
        """Create a parser over custom sections supplied by the host."""
        return cls(WasmModule(custom_sections=list(sections)), config)

    def _load_module(self) -> WasmModule:
        if self.module is None:
            if isinstance(self.source, (bytes, bytearray, memoryview)):
                data = bytes(self.source)
            else:
                path = Path(self.source)
                if not path.exists():
                    raise FileNotFoundError(f"Module file not found: {path}")
                data = path.read_bytes()
            self.module = parse_module(data)
        return self.module

    def extract_dwarf_info(self) -> Optional[list[CompilationUnitInfo]]:
        """Decode the module's debug information.

        Returns:
            Decoded compilation units, or None if the module has no debug info

        Raises:
            DwarfError: If .debug_info is present but not even its first unit
                header can be read
        """
        if self.units is not None:
            return self.units

        module = self._load_module()
        sections = DebugSections.from_custom_sections(module.custom_sections)
        self.sections = sections
        if not sections.has_debug_info:
            logger.info(str(MissingSections()))
            return None

        if not sections.debug_info:
            logger.info("No .debug_info; line programs cannot be tied to a unit")
            units = []
        else:
            self.die_parser = DIEParser(sections, self.config)
            units = [self._unit_info(unit) for unit in self.die_parser.parse()]

        self.units = units
        logger.debug(f"Extracted {len(units)} compilation unit(s)")
        return units

    def _unit_info(self, unit: CompileUnit) -> CompilationUnitInfo:
        """Combine a unit's DIE tree and line program."""
        name = unit.name
        comp_dir = unit.comp_dir
        file_table = []
        sequences = []

        if unit.stmt_list is not None:
            program = LineProgram(unit, self.config)
            try:
                sequences = program.run()
            except DwarfError as e:
                logger.warning(f"Discarding line program of unit {name or hex(unit.header.offset)}: {e}")
                sequences = []
            file_table = program.file_table

        return CompilationUnitInfo(
            name=name,
            comp_dir=comp_dir,
            file_table=file_table,
            sequences=sequences,
            functions=self.die_parser.collect_functions(unit),
            language=unit.language,
            offset=unit.header.offset,
        )

    def get_compilation_units(self):
        """Get all decoded compilation units.

        Yields:
            CompilationUnitInfo objects
        """
        for unit in self.extract_dwarf_info() or []:
            yield unit

    def has_debug_info(self) -> bool:
        """Check if debug information was found."""
        return bool(self.extract_dwarf_info())

    def build_index(self) -> AddressIndex:
        """Build the address index; empty when the module has no debug info."""
        units = self.extract_dwarf_info()
        if not units:
            return AddressIndex.empty(self.config)
        return AddressIndex.build(units, self.config)

    @property
    def code_section_offset(self) -> Optional[int]:
        return self._load_module().code_section_offset
