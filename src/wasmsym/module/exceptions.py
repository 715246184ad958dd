"""
WebAssembly module exception classes.
"""


class ModuleError(Exception):
    """Base exception for module container errors."""
    pass


class InvalidMagic(ModuleError):
    """The data does not start with the WebAssembly magic number."""
    def __init__(self, magic: bytes):
        super().__init__(f"WebAssembly magic mismatch: {magic!r}")
        self.magic = magic


class UnsupportedModuleVersion(ModuleError):
    """The module declares a binary format version other than 1."""
    def __init__(self, version: int):
        super().__init__(f"Unsupported WebAssembly version {version}")
        self.version = version


class MissingCodeSection(ModuleError):
    """The module has no code section to anchor DWARF addresses to."""
    def __init__(self):
        super().__init__("Missing code section")


class MalformedModule(ModuleError):
    """The section table cannot be read."""
    pass
