"""
Typed attribute values.

pyelftools decodes every attribute form and already resolves the indirect
ones (strp, line_strp, strx, addrx, rnglistx) against their sections. This
module tags each decoded value with the primitive kind the resolver works
with, decodes strings, and turns unit-relative references into absolute
.debug_info offsets so DIEs can be looked up across units.
"""

from enum import Enum
from typing import Any, NamedTuple, Optional

from elftools.dwarf.die import AttributeValue as ElfAttributeValue

from wasmsym.dwarf.abbrev import DwarfCode
from wasmsym.dwarf.exceptions import UnsupportedForm


class ValueKind(Enum):
    """Primitive encodings an attribute value can have."""

    UNSIGNED = "unsigned"
    SIGNED = "signed"
    OFFSET = "offset"  # Offset into another section
    REFERENCE = "reference"  # Absolute .debug_info offset of another DIE
    ADDRESS = "address"
    STRING = "string"
    FLAG = "flag"
    BLOCK = "block"


class AttributeValue(NamedTuple):
    """A decoded attribute value tagged with its form and kind."""

    form: DwarfCode
    kind: ValueKind
    value: Any


CONSTANT_FORMS = frozenset({
    'DW_FORM_data1', 'DW_FORM_data2', 'DW_FORM_data4', 'DW_FORM_data8',
    'DW_FORM_udata', 'DW_FORM_sdata', 'DW_FORM_implicit_const',
})

UNIT_RELATIVE_FORMS = frozenset({
    'DW_FORM_ref1', 'DW_FORM_ref2', 'DW_FORM_ref4', 'DW_FORM_ref8', 'DW_FORM_ref_udata',
})

FORM_KINDS = {
    'DW_FORM_data1': ValueKind.UNSIGNED,
    'DW_FORM_data2': ValueKind.UNSIGNED,
    'DW_FORM_data4': ValueKind.UNSIGNED,
    'DW_FORM_data8': ValueKind.UNSIGNED,
    'DW_FORM_udata': ValueKind.UNSIGNED,
    'DW_FORM_sdata': ValueKind.SIGNED,
    'DW_FORM_implicit_const': ValueKind.SIGNED,
    'DW_FORM_data16': ValueKind.BLOCK,

    'DW_FORM_addr': ValueKind.ADDRESS,
    'DW_FORM_addrx': ValueKind.ADDRESS,
    'DW_FORM_addrx1': ValueKind.ADDRESS,
    'DW_FORM_addrx2': ValueKind.ADDRESS,
    'DW_FORM_addrx3': ValueKind.ADDRESS,
    'DW_FORM_addrx4': ValueKind.ADDRESS,

    'DW_FORM_string': ValueKind.STRING,
    'DW_FORM_strp': ValueKind.STRING,
    'DW_FORM_line_strp': ValueKind.STRING,
    'DW_FORM_strp_sup': ValueKind.STRING,
    'DW_FORM_GNU_strp_alt': ValueKind.STRING,
    'DW_FORM_strx': ValueKind.STRING,
    'DW_FORM_strx1': ValueKind.STRING,
    'DW_FORM_strx2': ValueKind.STRING,
    'DW_FORM_strx3': ValueKind.STRING,
    'DW_FORM_strx4': ValueKind.STRING,

    'DW_FORM_ref1': ValueKind.REFERENCE,
    'DW_FORM_ref2': ValueKind.REFERENCE,
    'DW_FORM_ref4': ValueKind.REFERENCE,
    'DW_FORM_ref8': ValueKind.REFERENCE,
    'DW_FORM_ref_udata': ValueKind.REFERENCE,
    'DW_FORM_ref_addr': ValueKind.REFERENCE,
    # Type signatures and references into other object files
    'DW_FORM_ref': ValueKind.UNSIGNED,
    'DW_FORM_ref_sig8': ValueKind.UNSIGNED,
    'DW_FORM_ref_sup4': ValueKind.OFFSET,
    'DW_FORM_ref_sup8': ValueKind.OFFSET,
    'DW_FORM_GNU_ref_alt': ValueKind.OFFSET,

    'DW_FORM_sec_offset': ValueKind.OFFSET,
    'DW_FORM_loclistx': ValueKind.OFFSET,
    'DW_FORM_rnglistx': ValueKind.OFFSET,

    'DW_FORM_flag': ValueKind.FLAG,
    'DW_FORM_flag_present': ValueKind.FLAG,

    'DW_FORM_block1': ValueKind.BLOCK,
    'DW_FORM_block2': ValueKind.BLOCK,
    'DW_FORM_block4': ValueKind.BLOCK,
    'DW_FORM_block': ValueKind.BLOCK,
    'DW_FORM_exprloc': ValueKind.BLOCK,
}


def attribute_value(attribute: ElfAttributeValue, unit_offset: int = 0) -> Optional[AttributeValue]:
    """Tag one attribute decoded by pyelftools.

    Args:
        attribute: Attribute of a pyelftools DIE
        unit_offset: .debug_info offset of the unit, for unit-relative references

    Returns:
        The typed value, or None for a string that could not be resolved
        (offset past the end of its string section, or a supplementary file)

    Raises:
        UnsupportedForm: If the form has no kind here
    """
    form = attribute.form
    kind = FORM_KINDS.get(form)
    if kind is None:
        raise UnsupportedForm(form, attribute.offset)

    value = attribute.value
    if kind == ValueKind.STRING:
        if not isinstance(value, bytes):
            return None
        value = value.decode('utf-8', errors='replace')
    elif kind == ValueKind.BLOCK:
        value = bytes(value)
    elif kind == ValueKind.FLAG:
        value = bool(value)
    elif form in UNIT_RELATIVE_FORMS:
        value += unit_offset
    return AttributeValue(form, kind, value)
