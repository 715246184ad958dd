"""
Module manager for tracking loaded WebAssembly modules and their debug info.

Trap and stack addresses reported by an engine are module offsets, while
DWARF addresses are relative to the code section payload. The manager keeps
one address index per module and converts between the two.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from wasmsym.config import ResolverConfig
from wasmsym.dwarf.address_index import AddressIndex, ResolvedLocation
from wasmsym.dwarf.parser import WasmDwarfParser
from wasmsym.module.wasm import WasmModule, parse_module

logger = logging.getLogger(__name__)


@dataclass
class Module:
    """Represents a loaded module."""

    name: str  # Module name (e.g., "app.wasm")
    code_section_offset: int  # Module offset of the code section payload
    index: AddressIndex = field(default_factory=AddressIndex.empty)
    path: Optional[str] = None  # Full path to module file, if loaded from disk
    has_debug_info: bool = False  # Whether DWARF info was found

    def to_code_address(self, module_offset: int) -> Optional[int]:
        """Convert a module offset to a code section relative address."""
        address = module_offset - self.code_section_offset
        return address if address >= 0 else None


class ModuleManager:
    """Manages loaded modules and resolves addresses against them.

    Modules are keyed by name (case-insensitive). Each one has its own
    immutable index, so lookups in different modules never interact.
    """

    def __init__(self, config: Optional[ResolverConfig] = None):
        self.config = config or ResolverConfig()
        self.modules: dict[str, Module] = {}  # {name.lower(): Module}

    def on_module_loaded(self, name: str, data: bytes | WasmModule,
                         path: Optional[str] = None) -> Module:
        """Register a module and build its address index.

        Args:
            name: Module name used by frames to refer to it
            data: Module bytes or an already parsed module
            path: File the module was read from, for display only

        Returns:
            The registered Module

        Raises:
            ModuleError: If the module container cannot be parsed or has no
                code section
            DwarfError: If .debug_info is present but unreadable
        """
        wasm = data if isinstance(data, WasmModule) else parse_module(data)
        parser = WasmDwarfParser(wasm, self.config)
        index = parser.build_index()

        module = Module(
            name=name,
            code_section_offset=wasm.require_code_section_offset(),
            index=index,
            path=path,
            has_debug_info=not index.is_empty,
        )
        self.add_module(module)

        if module.has_debug_info:
            logger.info(f"Loaded {name}: debug info found, code section at 0x{module.code_section_offset:x}")
        else:
            logger.info(f"Loaded {name}: no debug info")
        return module

    def load_file(self, path: str | Path, name: Optional[str] = None) -> Module:
        """Read a module from disk and register it under its file name."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Module file not found: {path}")
        return self.on_module_loaded(name or path.name, path.read_bytes(), path=str(path))

    def add_module(self, module: Module):
        """Register an already built module, replacing one with the same name."""
        if module.name.lower() in self.modules:
            logger.warning(f"Replacing previously loaded module {module.name}")
        self.modules[module.name.lower()] = module

    def on_module_unloaded(self, name: str):
        """Forget a module.

        Args:
            name: Module name (case-insensitive)
        """
        module = self.modules.pop(name.lower(), None)
        if module:
            logger.info(f"Unloaded {module.name}")
        else:
            logger.warning(f"Unloaded unknown module {name}")

    def get_module_by_name(self, name: str) -> Optional[Module]:
        """Get a module by name.

        Args:
            name: Module name (case-insensitive)

        Returns:
            Module if found, None otherwise
        """
        return self.modules.get(name.lower())

    def get_all_modules(self):
        """Get all loaded modules.

        Yields:
            Module objects, sorted by name
        """
        for key in sorted(self.modules):
            yield self.modules[key]

    def get_modules_with_debug_info(self):
        """Get modules that have debug information.

        Yields:
            Module objects with debug info
        """
        for module in self.get_all_modules():
            if module.has_debug_info:
                yield module

    def resolve_module_offset(self, module_name: str, offset: int) -> Optional[ResolvedLocation]:
        """Resolve a module offset (e.g., a trap address) to source.

        Args:
            module_name: Name the module was loaded under
            offset: Offset from the start of the module binary

        Returns:
            ResolvedLocation with the module offset as its address, None if
            the module is unknown or nothing covers the offset
        """
        module = self.get_module_by_name(module_name)
        if module is None:
            logger.debug(f"No module named {module_name}")
            return None

        address = module.to_code_address(offset)
        if address is None:
            return None

        location = module.index.resolve(address)
        if location is None:
            return None
        return ResolvedLocation(
            address=offset,
            file=location.file,
            line=location.line,
            column=location.column,
            function=location.function,
        )

    def resolve_frames(self, frames: Iterable[tuple[str, int]]) -> list[Optional[ResolvedLocation]]:
        """Resolve a stack of (module_name, module_offset) frames.

        Returns:
            One entry per frame, in order; None where a frame cannot be resolved
        """
        cache: dict[tuple[str, int], Optional[ResolvedLocation]] = {}
        results = []
        for module_name, offset in frames:
            key = (module_name.lower(), offset)
            if key not in cache:
                cache[key] = self.resolve_module_offset(module_name, offset)
            results.append(cache[key])
        return results
