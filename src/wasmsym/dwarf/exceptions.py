"""
DWARF decoding exception classes.

Every failure raised while decoding debug sections derives from DwarfError so
callers can skip a single compilation unit and keep going with the rest.
"""


class DwarfError(Exception):
    """Base exception for all DWARF decoding errors."""
    pass


class UnexpectedEndOfData(DwarfError):
    """A read ran past the end of a section slice."""
    def __init__(self, section: str, offset: int, size: int | None = None,
                 detail: str | None = None):
        if size is not None:
            message = f"Unexpected end of data in {section}: needed {size} byte(s) at offset 0x{offset:x}"
        else:
            message = f"Unexpected end of data in {section} at offset 0x{offset:x}: {detail}"
        super().__init__(message)
        self.section = section
        self.offset = offset
        self.size = size


class MalformedVarint(DwarfError):
    """A LEB128 value does not fit its target integer width."""
    def __init__(self, section: str, offset: int, bits: int = 64):
        super().__init__(
            f"Malformed LEB128 in {section} at offset 0x{offset:x} "
            f"(wider than {bits} bits)"
        )
        self.section = section
        self.offset = offset
        self.bits = bits


class UnsupportedVersion(DwarfError):
    """A unit or line program declares a version that is not enabled."""
    def __init__(self, kind: str, version: int, offset: int = 0, end: int | None = None):
        super().__init__(
            f"Unsupported {kind} version {version} at offset 0x{offset:x}"
        )
        self.kind = kind
        self.version = version
        self.offset = offset
        self.end = end  # Where the next unit starts, when known


class UnsupportedForm(DwarfError):
    """An attribute uses a form this decoder does not implement."""
    def __init__(self, form, offset: int = 0):
        name = form if isinstance(form, str) else f"0x{form:x}"
        super().__init__(f"Unsupported attribute form {name} at offset 0x{offset:x}")
        self.form = form
        self.offset = offset


class InvalidAbbreviation(DwarfError):
    """A DIE refers to an abbreviation code missing from its table."""
    def __init__(self, code: int, offset: int):
        super().__init__(
            f"Unknown abbreviation code {code} for DIE at offset 0x{offset:x}"
        )
        self.code = code
        self.offset = offset


class UnresolvedReference(DwarfError):
    """An attribute points outside the section it references."""
    def __init__(self, section: str, offset: int):
        super().__init__(f"Unresolved reference to {section} offset 0x{offset:x}")
        self.section = section
        self.offset = offset


class DwarfFormatError(DwarfError):
    """A header field holds a structurally invalid value."""
    pass


class MissingSections(DwarfError):
    """Neither .debug_info nor .debug_line is present in the module."""
    def __init__(self):
        super().__init__("No debug information available (.debug_info and .debug_line missing)")
