"""
structargs values (field type dispatch and string codecs).

Scope
- Value capability: anything exposing __parse__(text) and __str__() can back a
  flag. __typename__ (type hint shown in usage) and __implicit__ (value used
  when the flag is given without an argument) are optional.
- Builtin Values wrap a Reference to the bound field and never keep a copy:
  parsing writes straight into the structure, rendering reads from it.
- Registry: type-indexed table of codecs, built once and passed explicitly to
  the loader. register() is the extension point for caller-defined types.

Dispatch order (Registry.bind)
1. custom Value capability on the field value or on its declared class
2. composite table (timedelta, ip addresses, ip networks, IPMask, registered)
3. primitives (integer widths, floats, bool, str, bytes)
4. list[T] of any codec above (comma separated, csv for strings)
5. FixedBytes[n] (hex blob of exact length)
6. list[FixedBytes[n]]
7. T | None (None is replaced by the zero value of T, then bound as T)

Text forms
- integers accept base prefixes (0x, 0o, 0b, legacy leading 0 octal) and
  underscores, and reject anything outside the declared width.
- floats render with the shortest round-tripping digits, switching to
  exponent form below 1e-4 and from 1e+06 upwards.
- durations use the 1h2m3.5s / 300ms / 1.5µs form with microsecond resolution.
- bytes are hex (case-insensitive, optional 0x prefix, surrounding blanks
  ignored).
"""
import builtins
import copy
import csv
import io
import math
import re
import struct
from dataclasses import dataclass
from datetime import timedelta
from ipaddress import (
    IPv4Address,
    IPv4Network,
    IPv6Address,
    IPv6Network,
    ip_address,
    ip_network,
)
from types import NoneType, UnionType
from typing import Annotated, NewType, Union, get_args, get_origin

from .faults import UnsupportedTypeError
from .utils import Unset, rename

# Width markers. Plain int and float are 64-bit.
Int8 = NewType("Int8", int)
Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
Uint = NewType("Uint", int)
Uint8 = NewType("Uint8", int)
Uint16 = NewType("Uint16", int)
Uint32 = NewType("Uint32", int)
Uint64 = NewType("Uint64", int)
Float32 = NewType("Float32", float)
Float64 = NewType("Float64", float)

IP = IPv4Address | IPv6Address
IPNet = IPv4Network | IPv6Network


@dataclass(frozen=True)
class FixedLength:
    """Annotated marker for an exact byte length."""
    size: int


class FixedBytes:
    """
    FixedBytes[n] is Annotated[bytes, FixedLength(n)]: a hex blob that must
    decode to exactly n bytes.
    """

    def __class_getitem__(cls, size):
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise TypeError("FixedBytes[] size must be a non-negative integer")
        return Annotated[bytes, FixedLength(size)]


class IPMask:
    """
    IPv4 network mask.

    Parses the dotted form (255.255.255.0) or eight hex digits (ffffff00) and
    renders as eight hex digits. Contiguity of the mask bits is not checked.
    """
    __slots__ = ("_packed",)

    def __init__(self, packed=bytes(4), /):
        if isinstance(packed, str):
            packed = IPMask.parse(packed).packed
        if not isinstance(packed, bytes | bytearray) or len(packed) != 4:
            raise TypeError("IPMask() argument must be 4 bytes or a mask string")
        self._packed = bytes(packed)

    @classmethod
    def parse(cls, text, /):
        try:
            return cls(IPv4Address(text).packed)
        except ValueError:
            pass
        if len(text) == 8 and re.fullmatch(r"[0-9a-fA-F]{8}", text):
            return cls(bytes.fromhex(text))
        raise ValueError(f"failed to parse IP mask: {text!r}")

    @property
    def packed(self):
        return self._packed

    @property
    def prefixlen(self):
        return bin(int.from_bytes(self._packed)).count("1")

    def __str__(self):
        return self._packed.hex()

    def __repr__(self):
        return f"IPMask({str(self)!r})"

    def __eq__(self, other):
        if not isinstance(other, IPMask):
            return NotImplemented
        return self._packed == other._packed

    def __hash__(self):
        return hash(self._packed)


class Reference:
    """
    Mutable handle on one field of one structure: (owner, attribute).
    """
    __slots__ = ("owner", "attribute")

    def __init__(self, owner, attribute, /):
        self.owner = owner
        self.attribute = attribute

    def get(self):
        return getattr(self.owner, self.attribute)

    def set(self, value):
        setattr(self.owner, self.attribute, value)

    def __repr__(self):
        return f"Reference({type(self.owner).__name__}.{self.attribute})"


class Value:
    """
    Builtin Value: a codec applied to a Reference.

    __parse__ replaces the field wholesale (lists included, no append).
    __str__ renders None as an empty string so zero values always render.
    """
    __slots__ = ("_reference", "_codec")

    def __init__(self, reference, codec, /):
        self._reference = reference
        self._codec = codec

    @property
    def __typename__(self):
        return self._codec.typename

    @property
    def __implicit__(self):
        return self._codec.implicit

    @property
    def reference(self):
        return self._reference

    def __parse__(self, text):
        self._reference.set(self._codec.decode(text))

    def __str__(self):
        if (value := self._reference.get()) is None:
            return ""
        return self._codec.encode(value)

    def __repr__(self):
        return f"Value({self._codec.typename}, {self._reference!r})"


class Codec:
    """
    Named decode/encode pair with a zero value.

    A Codec is a Value factory: calling it with a Reference returns a Value.
    Only Codecs can serve as list elements.
    """
    __slots__ = ("typename", "decode", "encode", "zero", "implicit")

    def __init__(self, typename, decode, encode=str, /, *, zero=None, implicit=None):
        self.typename = typename
        self.decode = decode
        self.encode = encode
        self.zero = zero
        self.implicit = implicit

    def __call__(self, reference, /):
        return Value(reference, self)

    def __repr__(self):
        return f"Codec({self.typename!r})"

    @classmethod
    def sequence(cls, element, /):
        """Comma separated list of element; strings are csv quoted."""
        if element.typename == "string":
            return cls("stringSlice", _parse_csv, _format_csv, zero=[])

        @rename(f"parse_{element.typename}_slice")
        def decode(text):
            if text == "":
                return []
            return [element.decode(item) for item in text.split(",")]

        @rename(f"format_{element.typename}_slice")
        def encode(values):
            return ",".join(element.encode(value) for value in values)

        return cls(element.typename + "Slice", decode, encode, zero=[])


def _parse_integer(text, signed):
    if not text or text != text.strip() or (not signed and text[0] in "+-"):
        raise ValueError(f"parsing {text!r}: invalid syntax")
    try:
        return int(text, 0)
    except ValueError:
        if re.fullmatch(r"[+-]?0[0-7_]+", text):
            return int(text, 8)
        raise ValueError(f"parsing {text!r}: invalid syntax") from None


def _integer(typename, bits, signed):
    low, high = (-(1 << bits - 1), (1 << bits - 1) - 1) if signed else (0, (1 << bits) - 1)

    @rename(f"parse_{typename}")
    def decode(text):
        value = _parse_integer(text, signed)
        if not low <= value <= high:
            raise ValueError(f"parsing {text!r}: value out of range")
        return value

    return Codec(typename, decode, str, zero=0)


def _narrow(value):
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _parse_float(text, bits):
    if not text or "_" in text or text != text.strip():
        raise ValueError(f"parsing {text!r}: invalid syntax")
    try:
        value = float(text)
    except ValueError:
        raise ValueError(f"parsing {text!r}: invalid syntax") from None
    if math.isinf(value) and "inf" not in text.lower():
        raise ValueError(f"parsing {text!r}: value out of range")
    if bits == 32 and math.isfinite(value):
        try:
            value = _narrow(value)
        except OverflowError:
            raise ValueError(f"parsing {text!r}: value out of range") from None
    return value


def _format_float(value, bits):
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    narrow = _narrow if bits == 32 else float
    # Shortest digit count that still reads back to the same value.
    for precision in range(17):
        digits = f"{value:.{precision}e}"
        if narrow(float(digits)) == value:
            break
    exponent = int(digits.partition("e")[2])
    if exponent < -4 or exponent >= 6:
        return digits
    return f"{value:.{max(precision - exponent, 0)}f}"


def _float(typename, bits):
    return Codec(
        typename,
        rename(lambda text: _parse_float(text, bits), f"parse_{typename}"),
        rename(lambda value: _format_float(value, bits), f"format_{typename}"),
        zero=0.0,
    )


_TRUE = frozenset(("1", "t", "T", "TRUE", "true", "True"))
_FALSE = frozenset(("0", "f", "F", "FALSE", "false", "False"))


def _parse_bool(text):
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"parsing {text!r}: invalid syntax")


def _format_bool(value):
    return "true" if value else "false"


_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,  # U+00B5
    "μs": 1_000,  # U+03BC
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?(ns|us|µs|μs|ms|s|m|h)")


def _parse_duration(text):
    body = text[1:] if text[:1] in ("+", "-") else text
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    nanoseconds, position = 0, 0
    while position < len(body):
        match = _COMPONENT.match(body, position)
        if match is None or not (match[1] or match[2]):
            raise ValueError(f"invalid duration {text!r}")
        whole, fraction, unit = match[1] or "0", match[2] or "", _UNITS[match[3]]
        nanoseconds += int(whole) * unit
        if fraction:
            nanoseconds += int(fraction) * unit // 10 ** len(fraction)
        position = match.end()
    microseconds, remainder = divmod(nanoseconds, 1_000)
    microseconds += remainder >= 500
    try:
        value = timedelta(microseconds=microseconds)
    except OverflowError:
        raise ValueError(f"invalid duration {text!r}: out of range") from None
    return -value if text.startswith("-") else value


def _decimal(value, scale):
    whole, part = divmod(value, scale)
    if not part:
        return str(whole)
    return f"{whole}.{part:0{len(str(scale)) - 1}d}".rstrip("0")


def _format_duration(value):
    sign = "-" if value < timedelta(0) else ""
    total = abs(value) // timedelta(microseconds=1)
    if total == 0:
        return "0s"
    if total < 1_000:
        return f"{sign}{total}µs"
    if total < 1_000_000:
        return f"{sign}{_decimal(total, 1_000)}ms"
    hours, rest = divmod(total, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    text = _decimal(rest, 1_000_000) + "s"
    if hours or minutes:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return sign + text


def _parse_hex(text):
    text = text.strip().lower().removeprefix("0x")
    if any(character.isspace() for character in text):
        raise ValueError(f"invalid hex bytes: {text!r}")
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise ValueError(f"invalid hex bytes: {text!r}") from None


def _format_hex(value):
    return bytes(value).hex()


def _fixed(size):
    @rename(f"parse_bytes{size}")
    def decode(text):
        value = _parse_hex(text)
        if len(value) != size:
            raise ValueError(
                f"byte length does not match fixed-length of {size} bytes: parsed {len(value)} bytes"
            )
        return value

    return Codec(f"bytes{size}", decode, _format_hex, zero=bytes(size))


def _fixed_sequence(size):
    @rename(f"parse_bytes{size}_slice")
    def decode(text):
        text = text.strip().lower()
        values = []
        for index, item in enumerate(text.split(",") if text else ()):
            value = _parse_hex(item)
            if len(value) != size:
                raise ValueError(
                    f"byte length of element {index} does not match fixed-length of {size} bytes: "
                    f"parsed {len(value)} bytes"
                )
            values.append(value)
        return values

    @rename(f"format_bytes{size}_slice")
    def encode(values):
        return ",".join(map(_format_hex, values))

    return Codec(f"[]bytes{size}", decode, encode, zero=[])


def _parse_csv(text):
    if text == "":
        return []
    try:
        return next(csv.reader([text], strict=True))
    except csv.Error as error:
        raise ValueError(f"invalid csv {text!r}: {error}") from None


def _format_csv(values):
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(values)
    return buffer.getvalue().removesuffix("\n")


def _network(factory):
    def decode(text):
        if "/" not in text:
            raise ValueError(f"invalid CIDR address: {text}")
        return factory(text, strict=False)

    return decode


def _key(type):
    if get_origin(type) in (Union, UnionType):
        return frozenset(get_args(type))
    return type


def _optional(type):
    """Return T for T | None, else Unset."""
    if get_origin(type) not in (Union, UnionType):
        return Unset
    args = get_args(type)
    if NoneType not in args:
        return Unset
    rest = tuple(arg for arg in args if arg is not NoneType)
    return rest[0] if len(rest) == 1 else Union[rest]


def _is_custom(object):
    return callable(getattr(object, "__parse__", None)) and not isinstance(object, Value)


class Registry:
    """
    Type to Value dispatch table.

    Composite entries (including everything passed to register) are looked
    up before primitives, so registering a builtin type overrides it.
    """

    def __init__(self):
        self._composites = {}
        self._primitives = {}

        self._primitives.update({
            bool: Codec("bool", _parse_bool, _format_bool, zero=False, implicit="true"),
            str: Codec("string", str, str, zero=""),
            int: _integer("int", 64, True),
            Int8: _integer("int8", 8, True),
            Int16: _integer("int16", 16, True),
            Int32: _integer("int32", 32, True),
            Int64: _integer("int64", 64, True),
            Uint: _integer("uint", 64, False),
            Uint8: _integer("uint8", 8, False),
            Uint16: _integer("uint16", 16, False),
            Uint32: _integer("uint32", 32, False),
            Uint64: _integer("uint64", 64, False),
            float: _float("float64", 64),
            Float32: _float("float32", 32),
            Float64: _float("float64", 64),
            bytes: Codec("bytes", _parse_hex, _format_hex, zero=b""),
            bytearray: Codec("bytes", lambda text: bytearray(_parse_hex(text)), _format_hex, zero=bytearray()),
        })

        for kind, codec in (
            (timedelta, Codec("duration", _parse_duration, _format_duration, zero=timedelta(0))),
            (IPv4Address, Codec("ip", IPv4Address)),
            (IPv6Address, Codec("ip", IPv6Address)),
            (IP, Codec("ip", ip_address)),
            (IPv4Network, Codec("ipNet", _network(IPv4Network))),
            (IPv6Network, Codec("ipNet", _network(IPv6Network))),
            (IPNet, Codec("ipNet", _network(ip_network))),
            (IPMask, Codec("ipMask", IPMask.parse)),
        ):
            self.register(kind, codec)

    def register(self, type, factory, /):
        """
        Bind fields declared as type through factory.

        factory is called with a Reference and must return a Value. Passing a
        Codec also makes list[type] available.
        """
        if not callable(factory):
            raise TypeError("register() second argument must be callable")
        self._composites[_key(type)] = factory

    def lookup(self, type, /):
        """Return the factory for type, or None when no table covers it."""
        key = _key(type)
        if key in self._composites:
            return self._composites[key]
        if key in self._primitives:
            return self._primitives[key]

        origin, args = get_origin(type), get_args(type)
        if origin is list and len(args) == 1:
            if (size := _fixed_size(args[0])) is not None:
                return _fixed_sequence(size)
            if isinstance(element := self.lookup(args[0]), Codec):
                return Codec.sequence(element)
            return None
        if origin is Annotated:
            if (size := _fixed_size(type)) is not None:
                return _fixed(size)
            return self.lookup(args[0])
        return None

    def zero(self, type, /):
        """Zero value for type (a fresh container for lists)."""
        if isinstance(type, builtins.type) and _is_custom(type):
            return type()
        if isinstance(factory := self.lookup(type), Codec):
            return copy.copy(factory.zero)
        return None

    def bind(self, type, reference, /):
        """
        Return a Value bound to reference, following the dispatch order.

        Raises UnsupportedTypeError naming the field type otherwise.
        """
        current = reference.get()
        if _is_custom(current):
            return current
        if isinstance(type, builtins.type) and _is_custom(type):
            if current is None:
                current = type()
                reference.set(current)
            return current

        if (factory := self.lookup(type)) is not None:
            return factory(reference)

        if (inner := _optional(type)) is not Unset:
            if current is None:
                reference.set(self.zero(inner))
            return self.bind(inner, reference)

        raise UnsupportedTypeError(
            f"field {reference.attribute!r} has unsupported type {type!r}",
            type=type,
            hint="use a supported type or implement __parse__ and __str__",
        )


def _fixed_size(type):
    if get_origin(type) is not Annotated:
        return None
    base, *metadata = get_args(type)
    if base not in (bytes, bytearray):
        return None
    for marker in metadata:
        if isinstance(marker, FixedLength):
            return marker.size
    return None


registry = Registry()
"""Process-wide default registry used when load() is given none."""


__all__ = (
    # Markers
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Uint",
    "Uint8",
    "Uint16",
    "Uint32",
    "Uint64",
    "Float32",
    "Float64",
    "IP",
    "IPNet",
    "FixedLength",
    "FixedBytes",

    # Types
    "IPMask",
    "Reference",
    "Value",
    "Codec",
    "Registry",

    # Constants
    "registry",
)
