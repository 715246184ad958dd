"""
Locate DWARF sections among a module's custom sections.

WebAssembly producers (clang, rustc, emscripten) store each DWARF section as a
custom section named after the ELF section it would have been, e.g.
``.debug_info``. Sections that are not present are treated as empty.
"""

import logging
from dataclasses import dataclass, fields
from typing import Iterable

logger = logging.getLogger(__name__)

DEBUG_SECTION_PREFIX = '.debug_'


@dataclass(frozen=True)
class RawSection:
    """One named custom section of a module."""

    name: str
    data: bytes


@dataclass(frozen=True)
class DebugSections:
    """Byte slices of the DWARF sections the resolver understands."""

    debug_info: bytes = b''
    debug_abbrev: bytes = b''
    debug_line: bytes = b''
    debug_str: bytes = b''
    debug_str_offsets: bytes = b''
    debug_ranges: bytes = b''
    debug_addr: bytes = b''
    debug_line_str: bytes = b''
    debug_rnglists: bytes = b''
    debug_loclists: bytes = b''

    @classmethod
    def from_custom_sections(cls, sections: Iterable[RawSection]) -> 'DebugSections':
        """Pick the debug sections out of a module's custom sections.

        Args:
            sections: Custom sections in module order

        Returns:
            DebugSections with every recognized section filled in
        """
        known = {f'.{field.name}': field.name for field in fields(cls)}
        found = {}
        for section in sections:
            attr = known.get(section.name)
            if attr is None:
                if section.name.startswith(DEBUG_SECTION_PREFIX):
                    logger.debug(f"Ignoring unsupported debug section {section.name}")
                continue
            if attr in found:
                logger.warning(f"Duplicate custom section {section.name}, keeping the first one")
                continue
            found[attr] = bytes(section.data)

        logger.debug(f"Located debug sections: {', '.join(sorted(found)) or 'none'}")
        return cls(**found)

    @property
    def has_debug_info(self) -> bool:
        """True unless both .debug_info and .debug_line are missing."""
        return bool(self.debug_info) or bool(self.debug_line)

    def section_data(self, name: str) -> bytes:
        """Get a section by its name, e.g. ``'.debug_str'``."""
        return getattr(self, name.lstrip('.'))
