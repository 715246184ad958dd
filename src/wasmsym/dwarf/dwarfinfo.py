"""
pyelftools DWARFInfo over WebAssembly custom sections.

pyelftools usually receives its sections from an ELF container. A wasm module
carries them as custom sections instead, so each located section is handed
over as a DebugSectionDescriptor on an in-memory stream.
"""

from dataclasses import fields
from io import BytesIO

from elftools.common.exceptions import DWARFError, ELFError
from elftools.construct import ConstructError
from elftools.dwarf.dwarfinfo import DebugSectionDescriptor, DWARFInfo, DwarfConfig

from wasmsym.dwarf.exceptions import DwarfError, DwarfFormatError, UnexpectedEndOfData
from wasmsym.dwarf.sections import DebugSections

# wasm32 is little-endian with 4-byte addresses; units may still declare 8
WASM_DWARF_CONFIG = DwarfConfig(little_endian=True, machine_arch='wasm32', default_address_size=4)

# Besides its own exceptions, pyelftools lets lookups and assertions on
# malformed input escape as builtin errors
DECODE_ERRORS = (
    DWARFError,
    ELFError,
    ConstructError,
    KeyError,
    IndexError,
    ValueError,
    TypeError,
    AttributeError,
    AssertionError,
    NotImplementedError,
    ZeroDivisionError,
)


def build_dwarfinfo(sections: DebugSections) -> DWARFInfo:
    """Create a pyelftools DWARFInfo from located debug sections.

    Every section wasmsym knows gets a descriptor, empty ones included, since
    pyelftools asserts on a missing descriptor as soon as a form needs it.
    Sections the resolver never reads are passed as None.
    """
    descriptors = {}
    for field in fields(sections):
        data = getattr(sections, field.name)
        descriptors[f'{field.name}_sec'] = DebugSectionDescriptor(
            stream=BytesIO(data),
            name=f'.{field.name}',
            global_offset=0,
            size=len(data),
            address=0,
        )

    return DWARFInfo(
        config=WASM_DWARF_CONFIG,
        debug_aranges_sec=None,
        debug_frame_sec=None,
        eh_frame_sec=None,
        debug_loc_sec=None,
        debug_pubtypes_sec=None,
        debug_pubnames_sec=None,
        debug_sup_sec=None,
        gnu_debugaltlink_sec=None,
        debug_types_sec=None,
        **descriptors,
    )


def translate_error(error: Exception, section: str, offset: int) -> DwarfError:
    """Map an exception raised inside pyelftools onto a DwarfError.

    construct failures (reported by pyelftools as ELFParseError) are reads
    that ran out of data; anything else is a structurally invalid value.

    Args:
        error: The exception pyelftools raised
        section: Section being decoded, e.g. ``'.debug_info'``
        offset: Where decoding of the failing item started
    """
    if isinstance(error, DwarfError):
        return error
    if isinstance(error, (ELFError, ConstructError)):
        return UnexpectedEndOfData(section, offset, detail=str(error))
    detail = str(error) or type(error).__name__
    return DwarfFormatError(f"Malformed {section} data at offset 0x{offset:x}: {detail}")
