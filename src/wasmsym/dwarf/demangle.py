"""
Best-effort symbol demangling.

Supports the schemes found in WebAssembly modules built from Rust and Go:

- ``rust-v0``: Rust v0 mangling (``_R...``)
- ``rust-legacy``: Rust legacy mangling (``_ZN...17h<hash>E``)
- ``go``: Go symbols with ``%xx`` escapes (``example.com/a%2eb.F``)

Anything else is returned unchanged. Demangling never raises.
"""

import functools
import logging
import re
from typing import Optional
from urllib.parse import unquote

from wasmsym.config import DEMANGLE_SCHEMES

logger = logging.getLogger(__name__)

MAX_DEPTH = 200


class DemangleError(ValueError):
    """The symbol is not valid in the scheme being tried."""
    pass


@functools.lru_cache(maxsize=4096)
def demangle(name: str, schemes: Optional[tuple[str, ...]] = None) -> str:
    """Demangle a symbol name.

    Args:
        name: Raw (possibly mangled) symbol name
        schemes: Enabled schemes, all of them by default

    Returns:
        Human readable name, or ``name`` itself if no enabled scheme applies
    """
    schemes = DEMANGLE_SCHEMES if schemes is None else schemes
    try:
        if name.startswith('_R') and 'rust-v0' in schemes:
            return demangle_rust_v0(name)
        if name.startswith(('_ZN', '__ZN')) and 'rust-legacy' in schemes:
            return demangle_rust_legacy(name)
        if 'go' in schemes and _GO_SYMBOL.match(name):
            return demangle_go(name)
    except (ValueError, OverflowError, RecursionError) as e:
        # DemangleError, or an input that drives a scheme past its limits
        logger.debug(f"Could not demangle {name!r}: {e}")
    return name


# Rust legacy

_LEGACY_ESCAPES = {
    'SP': '@',
    'BP': '*',
    'RF': '&',
    'LT': '<',
    'GT': '>',
    'LP': '(',
    'RP': ')',
    'C': ',',
}
_LEGACY_ESCAPE = re.compile(r'\$([A-Za-z0-9]+)\$')
_LEGACY_HASH = re.compile(r'h[0-9a-f]{16}')


def _unescape_legacy(ident: str) -> str:
    if ident.startswith('_$'):
        ident = ident[1:]

    def replace(match):
        code = match.group(1)
        if code in _LEGACY_ESCAPES:
            return _LEGACY_ESCAPES[code]
        if code.startswith('u'):
            try:
                return _char(int(code[1:], 16))
            except ValueError:
                pass
        raise DemangleError(f"unknown escape ${code}$")

    return _LEGACY_ESCAPE.sub(replace, ident.replace('..', '::'))


def demangle_rust_legacy(name: str) -> str:
    """Demangle ``_ZN<len><ident>...E``, dropping the trailing hash segment."""
    rest = name[4:] if name.startswith('__ZN') else name[3:]
    parts = []
    pos = 0
    while pos < len(rest) and rest[pos] != 'E':
        digits = re.match(r'[1-9][0-9]*', rest[pos:])
        if digits is None:
            raise DemangleError("expected identifier length")
        pos += len(digits.group(0))
        length = int(digits.group(0))
        if pos + length > len(rest):
            raise DemangleError("identifier runs past the end")
        parts.append(rest[pos:pos + length])
        pos += length

    if pos >= len(rest) or not parts:
        raise DemangleError("missing terminating E")
    suffix = rest[pos + 1:]
    if suffix and not suffix.startswith('.'):
        # Itanium C++ with a parameter list, not Rust
        raise DemangleError("trailing characters after E")

    if len(parts) > 1 and _LEGACY_HASH.fullmatch(parts[-1]):
        parts.pop()
    return '::'.join(_unescape_legacy(part) for part in parts)


# Rust v0

_BASIC_TYPES = {
    'a': 'i8', 'b': 'bool', 'c': 'char', 'd': 'f64', 'e': 'str', 'f': 'f32',
    'h': 'u8', 'i': 'isize', 'j': 'usize', 'l': 'i32', 'm': 'u32', 'n': 'i128',
    'o': 'u128', 's': 'i16', 't': 'u16', 'u': '()', 'v': '...', 'x': 'i64',
    'y': 'u64', 'z': '!', 'p': '_',
}
_SIGNED_CONST_TYPES = frozenset('ailnsx')
_UNSIGNED_CONST_TYPES = frozenset('hjmoty')
_BASE62 = '0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ'


class _V0Demangler:
    """Recursive descent parser for the Rust v0 grammar."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        self.pos = 0
        self.depth = 0

    def peek(self) -> str:
        return self.symbol[self.pos] if self.pos < len(self.symbol) else ''

    def next(self) -> str:
        if self.pos >= len(self.symbol):
            raise DemangleError("unexpected end of symbol")
        char = self.symbol[self.pos]
        self.pos += 1
        return char

    def eat(self, char: str) -> bool:
        if self.peek() == char:
            self.pos += 1
            return True
        return False

    def enter(self):
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise DemangleError("recursion limit exceeded")

    def base62(self) -> int:
        if self.eat('_'):
            return 0
        value = 0
        while True:
            char = self.next()
            if char == '_':
                return value + 1
            digit = _BASE62.find(char)
            if digit < 0:
                raise DemangleError(f"invalid base-62 digit {char!r}")
            value = value * 62 + digit

    def optional_base62(self, tag: str) -> int:
        return self.base62() + 1 if self.eat(tag) else 0

    def decimal(self) -> int:
        start = self.pos
        while self.peek().isdigit():
            self.pos += 1
        digits = self.symbol[start:self.pos]
        if not digits or (len(digits) > 1 and digits[0] == '0'):
            raise DemangleError("invalid decimal number")
        return int(digits)

    def identifier(self) -> str:
        self.optional_base62('s')  # disambiguator
        return self.undisambiguated_identifier()

    def undisambiguated_identifier(self) -> str:
        punycode = self.eat('u')
        length = self.decimal()
        self.eat('_')
        if self.pos + length > len(self.symbol):
            raise DemangleError("identifier runs past the end")
        ident = self.symbol[self.pos:self.pos + length]
        self.pos += length
        if punycode:
            ident = _decode_punycode(ident)
        return ident

    def backref(self, parse):
        start = self.pos - 1  # Position of the B tag
        target = self.base62()
        if target >= start:
            raise DemangleError("forward back-reference")
        saved = self.pos
        self.enter()
        self.pos = target
        try:
            return parse()
        finally:
            self.pos = saved
            self.depth -= 1

    def path(self, in_value: bool = True) -> str:
        self.enter()
        try:
            return self._path(in_value)
        finally:
            self.depth -= 1

    def _path(self, in_value: bool) -> str:
        tag = self.next()
        if tag == 'C':
            return self.identifier()
        if tag == 'N':
            namespace = self.next()
            if not namespace.isalpha():
                raise DemangleError(f"invalid namespace {namespace!r}")
            prefix = self.path(in_value)
            disambiguator = self.optional_base62('s')
            name = self.undisambiguated_identifier()
            if namespace.isupper():
                kind = {'C': 'closure', 'S': 'shim'}.get(namespace, namespace)
                label = f"{kind}:{name}" if name else kind
                return f"{prefix}::{{{label}#{disambiguator}}}"
            return f"{prefix}::{name}" if name else prefix
        if tag == 'M':
            self.optional_base62('s')
            self.path(in_value)  # impl path
            return f"<{self.type()}>"
        if tag == 'X':
            self.optional_base62('s')
            self.path(in_value)  # impl path
            self_type = self.type()
            return f"<{self_type} as {self.path(False)}>"
        if tag == 'Y':
            self_type = self.type()
            return f"<{self_type} as {self.path(False)}>"
        if tag == 'I':
            prefix = self.path(in_value)
            args = []
            while not self.eat('E'):
                args.append(self.generic_arg())
            separator = '::' if in_value else ''
            return f"{prefix}{separator}<{', '.join(args)}>"
        if tag == 'B':
            return self.backref(lambda: self.path(in_value))
        raise DemangleError(f"invalid path tag {tag!r}")

    def generic_arg(self) -> str:
        if self.eat('L'):
            return self.lifetime(self.base62())
        if self.eat('K'):
            return self.const()
        return self.type()

    @staticmethod
    def lifetime(index: int) -> str:
        return "'_" if index == 0 else f"'_{index}"

    def type(self) -> str:
        self.enter()
        try:
            return self._type()
        finally:
            self.depth -= 1

    def _type(self) -> str:
        tag = self.peek()
        if tag in _BASIC_TYPES:
            self.pos += 1
            return _BASIC_TYPES[tag]
        if tag in 'CNMXYI':
            return self.path(False)

        self.next()
        if tag in 'RQ':
            lifetime = ''
            if self.eat('L'):
                index = self.base62()
                if index:
                    lifetime = self.lifetime(index) + ' '
            mutable = 'mut ' if tag == 'Q' else ''
            return f"&{lifetime}{mutable}{self.type()}"
        if tag == 'P':
            return f"*const {self.type()}"
        if tag == 'O':
            return f"*mut {self.type()}"
        if tag == 'A':
            element = self.type()
            return f"[{element}; {self.const()}]"
        if tag == 'S':
            return f"[{self.type()}]"
        if tag == 'T':
            elements = []
            while not self.eat('E'):
                elements.append(self.type())
            if len(elements) == 1:
                return f"({elements[0]},)"
            return f"({', '.join(elements)})"
        if tag == 'F':
            return self.fn_sig()
        if tag == 'D':
            return self.dyn_bounds()
        if tag == 'B':
            return self.backref(self.type)
        raise DemangleError(f"invalid type tag {tag!r}")

    def fn_sig(self) -> str:
        self.optional_base62('G')  # binder
        prefix = ''
        if self.eat('U'):
            prefix += 'unsafe '
        if self.eat('K'):
            abi = 'C' if self.eat('C') else self.undisambiguated_identifier().replace('_', '-')
            prefix += f'extern "{abi}" '
        params = []
        while not self.eat('E'):
            params.append(self.type())
        ret = self.type()
        sig = f"{prefix}fn({', '.join(params)})"
        return sig if ret == '()' else f"{sig} -> {ret}"

    def dyn_bounds(self) -> str:
        self.optional_base62('G')  # binder
        traits = []
        while not self.eat('E'):
            trait = self.path(False)
            bindings = []
            while self.eat('p'):
                name = self.undisambiguated_identifier()
                bindings.append(f"{name} = {self.type()}")
            if bindings:
                if trait.endswith('>'):
                    trait = f"{trait[:-1]}, {', '.join(bindings)}>"
                else:
                    trait = f"{trait}<{', '.join(bindings)}>"
            traits.append(trait)
        if not self.eat('L'):
            raise DemangleError("dyn bounds without lifetime")
        self.base62()
        return f"dyn {' + '.join(traits)}"

    def const(self) -> str:
        self.enter()
        try:
            return self._const()
        finally:
            self.depth -= 1

    def _const(self) -> str:
        if self.eat('B'):
            return self.backref(self.const)
        if self.eat('p'):
            return '_'
        ty = self.next()
        negative = ty in _SIGNED_CONST_TYPES and self.eat('n')
        start = self.pos
        while self.peek() and self.peek() != '_':
            self.pos += 1
        digits = self.symbol[start:self.pos]
        if not self.eat('_'):
            raise DemangleError("unterminated constant")
        value = int(digits, 16) if digits else 0
        if ty == 'b':
            if value > 1:
                raise DemangleError("invalid bool constant")
            return 'true' if value else 'false'
        if ty == 'c':
            return repr(_char(value))
        if ty in _SIGNED_CONST_TYPES:
            return str(-value if negative else value)
        if ty in _UNSIGNED_CONST_TYPES:
            return str(value)
        raise DemangleError(f"unsupported constant type {ty!r}")


def _char(code: int) -> str:
    if not 0 <= code <= 0x10ffff or 0xd800 <= code <= 0xdfff:
        raise DemangleError(f"invalid code point 0x{code:x}")
    return chr(code)


def _decode_punycode(ident: str) -> str:
    # v0 uses '_' where RFC 3492 uses '-' as the basic/extended delimiter
    if '_' in ident:
        split = ident.rindex('_')
        ident = f"{ident[:split]}-{ident[split + 1:]}"
    try:
        return ident.encode('ascii').decode('punycode')
    except (UnicodeError, ValueError) as e:
        raise DemangleError(f"invalid punycode identifier: {e}") from None


def demangle_rust_v0(name: str) -> str:
    """Demangle a Rust v0 symbol (``_R`` prefix)."""
    # Back-references count from the end of the _R prefix
    parser = _V0Demangler(name[2:])
    if parser.peek().isdigit():
        parser.decimal()  # encoding version
    result = parser.path()
    # Optional instantiating crate
    if parser.peek() and parser.peek() in 'CNMXYIB':
        parser.path()
    rest = parser.symbol[parser.pos:]
    if rest and not rest.startswith('.'):
        raise DemangleError(f"trailing characters {rest!r}")
    return result


# Go

# Package path, a dot, then the symbol; Go escapes '.', '%' and non-ASCII
# bytes in the last path element as %xx.
_GO_SYMBOL = re.compile(r'^(?:[\w.~%-]+/)*[\w~%-]+(?:\.[\w~%-]+)*\.[\w.*()\[\]{},%·-]+$')


def demangle_go(name: str) -> str:
    """Decode the ``%xx`` escapes of a Go symbol name."""
    if '%' not in name:
        return name
    try:
        return unquote(name, errors='strict')
    except UnicodeDecodeError as e:
        raise DemangleError(f"invalid escape in Go symbol: {e}") from None
