"""
WebAssembly binary container reader.

Only walks the section table: the debug sections live in custom sections,
and DWARF code addresses are relative to the start of the code section
payload, so its module offset is recorded too.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from wasmsym.dwarf.exceptions import DwarfError
from wasmsym.dwarf.reader import ByteReader
from wasmsym.dwarf.sections import RawSection
from wasmsym.module.exceptions import (
    InvalidMagic,
    MalformedModule,
    MissingCodeSection,
    UnsupportedModuleVersion,
)

logger = logging.getLogger(__name__)

WASM_MAGIC = b'\x00asm'
WASM_VERSION = 1
CUSTOM_SECTION_ID = 0
CODE_SECTION_ID = 10


@dataclass
class WasmModule:
    """Sections of a parsed module relevant to symbolization."""

    custom_sections: list[RawSection] = field(default_factory=list)
    code_section_offset: Optional[int] = None  # Module offset of the code section payload

    def require_code_section_offset(self) -> int:
        if self.code_section_offset is None:
            raise MissingCodeSection()
        return self.code_section_offset


def parse_module(data: bytes) -> WasmModule:
    """Parse the section table of a WebAssembly binary.

    Args:
        data: Complete module bytes

    Returns:
        WasmModule with the custom sections in module order

    Raises:
        InvalidMagic: If the magic number is wrong
        UnsupportedModuleVersion: If the version is not 1
        MalformedModule: If a section header or payload is truncated
    """
    reader = ByteReader(data, section='module')
    try:
        magic = reader.read_bytes(4)
        if magic != WASM_MAGIC:
            raise InvalidMagic(magic)
        version = reader.u32()
        if version != WASM_VERSION:
            raise UnsupportedModuleVersion(version)

        module = WasmModule()
        while not reader.at_end():
            section_id = reader.uleb128(bits=8)
            payload = reader.sub_reader(reader.uleb128(bits=32))
            if section_id == CUSTOM_SECTION_ID:
                name = payload.read_bytes(payload.uleb128(bits=32)).decode('utf-8', errors='replace')
                module.custom_sections.append(RawSection(name, payload.read_bytes(payload.remaining)))
            elif section_id == CODE_SECTION_ID:
                module.code_section_offset = payload.pos
    except DwarfError as e:
        raise MalformedModule(f"Malformed section table: {e}") from e

    logger.debug(f"Parsed module: {len(module.custom_sections)} custom section(s), "
                 f"code section at {module.code_section_offset}")
    return module


def load_module(path: str | Path) -> WasmModule:
    """Read and parse a module file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Module file not found: {path}")
    return parse_module(path.read_bytes())
