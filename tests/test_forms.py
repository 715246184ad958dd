"""
Attribute value tagging tests.
"""

import pytest
from elftools.dwarf.die import AttributeValue as ElfAttributeValue

from wasmsym.dwarf.exceptions import UnsupportedForm
from wasmsym.dwarf.forms import AttributeValue, ValueKind, attribute_value


def decoded(form, value, name='DW_AT_name', raw_value=None, offset=0x20):
    """An attribute as pyelftools hands it over."""
    return ElfAttributeValue(
        name=name,
        form=form,
        value=value,
        raw_value=value if raw_value is None else raw_value,
        offset=offset,
        indirection_length=0,
    )


@pytest.mark.die
@pytest.mark.parametrize("form,value,kind,expected", [
    ('DW_FORM_data1', 5, ValueKind.UNSIGNED, 5),
    ('DW_FORM_udata', 300, ValueKind.UNSIGNED, 300),
    ('DW_FORM_sdata', -7, ValueKind.SIGNED, -7),
    ('DW_FORM_addr', 0x1234, ValueKind.ADDRESS, 0x1234),
    ('DW_FORM_addrx', 0x40, ValueKind.ADDRESS, 0x40),
    ('DW_FORM_string', b'x.c', ValueKind.STRING, 'x.c'),
    ('DW_FORM_strp', b'/src', ValueKind.STRING, '/src'),
    ('DW_FORM_strx1', b'a.c', ValueKind.STRING, 'a.c'),
    ('DW_FORM_sec_offset', 0x20, ValueKind.OFFSET, 0x20),
    ('DW_FORM_rnglistx', 0x0c, ValueKind.OFFSET, 0x0c),
    ('DW_FORM_flag', 1, ValueKind.FLAG, True),
    ('DW_FORM_flag_present', True, ValueKind.FLAG, True),
    ('DW_FORM_exprloc', [0x9c], ValueKind.BLOCK, b'\x9c'),
    ('DW_FORM_block1', [0xaa, 0xbb], ValueKind.BLOCK, b'\xaa\xbb'),
])
def test_value_kinds(form, value, kind, expected):
    result = attribute_value(decoded(form, value))
    assert result == AttributeValue(form, kind, expected)


@pytest.mark.die
def test_unit_relative_reference():
    result = attribute_value(decoded('DW_FORM_ref4', 0x20, name='DW_AT_abstract_origin'), unit_offset=0x100)
    assert result == AttributeValue('DW_FORM_ref4', ValueKind.REFERENCE, 0x120)


@pytest.mark.die
def test_ref_addr_is_already_absolute():
    result = attribute_value(decoded('DW_FORM_ref_addr', 0x40, name='DW_AT_specification'), unit_offset=0x100)
    assert result.value == 0x40


@pytest.mark.die
def test_invalid_utf8_is_replaced():
    result = attribute_value(decoded('DW_FORM_string', b'caf\xe9.c'))
    assert result.value == 'caf�.c'


@pytest.mark.die
def test_unresolved_string_is_absent():
    """pyelftools yields None for a strp past the end of .debug_str."""
    assert attribute_value(decoded('DW_FORM_strp', None, raw_value=0x99)) is None


@pytest.mark.die
def test_unknown_form_is_rejected():
    with pytest.raises(UnsupportedForm):
        attribute_value(decoded(0x7e, 0))
