"""
OSC Codec - Wire format for flat OSC messages

Implements the subset of OSC 1.0 the venue stations speak, on top of
python-osc's message parser and builder:
- Address pattern: NUL-terminated string padded to 4 bytes
- Type tag string: ',' followed by one tag per argument
- Arguments: int32 ('i'), float32 ('f'), string ('s'), all big-endian

Bundles and timetags are not supported. python-osc accepts some sloppy
datagrams (short floats, junk padding, trailing bytes); decode() only
accepts a datagram that re-encodes to exactly the same bytes.

Usage:
    data = encode("/score", [OscArg.of_float(100.0)])
    msg = decode(data)
    print(msg.address, msg.values)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Tuple, Union

from pythonosc import osc_message, osc_message_builder
from pythonosc.parsing import osc_types

_PAD = 4
_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1
_BUNDLE_PREFIX = b"#bundle"


class CodecError(Exception):
    """Base class for OSC wire format errors."""


class DecodeError(CodecError):
    """Datagram is not a well-formed OSC message."""


class EncodeError(CodecError):
    """Message cannot be represented on the wire."""


class ArgType(Enum):
    """OSC type tags supported by the codec."""
    FLOAT = osc_message_builder.OscMessageBuilder.ARG_TYPE_FLOAT
    INT = osc_message_builder.OscMessageBuilder.ARG_TYPE_INT
    STRING = osc_message_builder.OscMessageBuilder.ARG_TYPE_STRING


def _to_float32(value: float) -> float:
    """Round a Python float to the nearest value a float32 argument carries."""
    try:
        packed = osc_types.write_float(float(value))
    except (osc_types.BuildError, OverflowError) as exc:
        raise EncodeError(f"Value {value!r} does not fit OSC type 'f': {exc}") from exc
    return osc_types.get_float(packed, 0)[0]


@dataclass(frozen=True)
class OscArg:
    """Typed OSC argument. The tag is decided at decode time, not inferred later."""
    type: ArgType
    value: Union[float, int, str]

    @classmethod
    def of_float(cls, value: float) -> "OscArg":
        return cls(ArgType.FLOAT, _to_float32(value))

    @classmethod
    def of_int(cls, value: int) -> "OscArg":
        return cls(ArgType.INT, int(value))

    @classmethod
    def of_string(cls, value: str) -> "OscArg":
        return cls(ArgType.STRING, str(value))

    @classmethod
    def infer(cls, value: Any) -> "OscArg":
        """Build an argument from a plain Python value."""
        if isinstance(value, OscArg):
            return value
        # bool is an int subclass; OSC True/False tags are not supported
        if isinstance(value, bool):
            raise EncodeError(f"Unsupported OSC argument type: {type(value).__name__}")
        if isinstance(value, float):
            return cls.of_float(value)
        if isinstance(value, int):
            return cls.of_int(value)
        if isinstance(value, str):
            return cls.of_string(value)
        raise EncodeError(f"Unsupported OSC argument type: {type(value).__name__}")

    @property
    def is_numeric(self) -> bool:
        return self.type in (ArgType.FLOAT, ArgType.INT)

    def __str__(self) -> str:
        if self.type is ArgType.STRING:
            return f'"{self.value}"'
        return str(self.value)


@dataclass(frozen=True)
class OscMessage:
    """Decoded OSC message: address pattern plus ordered typed arguments."""
    address: str
    args: Tuple[OscArg, ...] = ()

    @property
    def type_tags(self) -> str:
        return "," + "".join(arg.type.value for arg in self.args)

    @property
    def values(self) -> List[Union[float, int, str]]:
        return [arg.value for arg in self.args]

    def __str__(self) -> str:
        if not self.args:
            return self.address
        return f"{self.address} {' '.join(str(arg) for arg in self.args)}"


# =============================================================================
# ENCODING
# =============================================================================

def _check_arg(arg: OscArg) -> None:
    """Reject values python-osc would mangle or silently accept."""
    if arg.type is ArgType.STRING:
        if not isinstance(arg.value, str):
            raise EncodeError(f"Value {arg.value!r} does not fit OSC type 's'")
        if "\x00" in arg.value:
            raise EncodeError("OSC strings cannot contain NUL bytes")
    elif arg.type is ArgType.INT:
        if isinstance(arg.value, bool) or not isinstance(arg.value, int):
            raise EncodeError(f"Value {arg.value!r} does not fit OSC type 'i'")
        if not _INT32_MIN <= arg.value <= _INT32_MAX:
            raise EncodeError(f"Value {arg.value!r} does not fit OSC type 'i'")


def build_message(address: str, args: Iterable[Any] = ()) -> osc_message.OscMessage:
    """
    Build a python-osc message ready for a UDP client.

    Args:
        address: Address pattern, must start with '/'
        args: OscArg items or plain float/int/str values

    Raises:
        EncodeError: Bad address, unsupported type, or out-of-range value
    """
    if not address.startswith("/"):
        raise EncodeError(f"OSC address must start with '/': {address!r}")
    if "\x00" in address:
        raise EncodeError("OSC addresses cannot contain NUL bytes")

    builder = osc_message_builder.OscMessageBuilder(address=address)
    for arg in (OscArg.infer(value) for value in args):
        _check_arg(arg)
        builder.add_arg(arg.value, arg.type.value)
    try:
        return builder.build()
    except (osc_message_builder.BuildError, osc_types.BuildError, OverflowError) as exc:
        raise EncodeError(f"Cannot build OSC message for {address}: {exc}") from exc


def encode(address: str, args: Iterable[Any] = ()) -> bytes:
    """Build an OSC datagram; length is always a multiple of 4."""
    return build_message(address, args).dgram


def encode_message(message: OscMessage) -> bytes:
    return encode(message.address, message.args)


def to_wire(message: OscMessage) -> osc_message.OscMessage:
    return build_message(message.address, message.args)


# =============================================================================
# DECODING
# =============================================================================

def _read_type_tags(data: bytes) -> Tuple[str, bool]:
    """Type tag string after the address, and whether one was present at all."""
    try:
        _, offset = osc_types.get_string(data, 0)
        if offset >= len(data):
            return ",", False
        type_tags, _ = osc_types.get_string(data, offset)
    except (osc_types.ParseError, ValueError) as exc:
        raise DecodeError(f"Malformed OSC string: {exc}") from exc
    return type_tags, True


def decode(data: bytes) -> OscMessage:
    """
    Parse one OSC message datagram.

    Raises:
        DecodeError: Malformed padding, unsupported type tag, truncated
            buffer, trailing bytes, or a bundle
    """
    if not data:
        raise DecodeError("Empty datagram")
    if len(data) % _PAD:
        raise DecodeError(f"Datagram length {len(data)} is not a multiple of {_PAD}")
    if data.startswith(_BUNDLE_PREFIX):
        raise DecodeError("OSC bundles are not supported")
    if not osc_message.OscMessage.dgram_is_message(data):
        raise DecodeError("OSC address must start with '/'")

    try:
        parsed = osc_message.OscMessage(data)
    except (osc_message.ParseError, osc_types.ParseError, ValueError) as exc:
        raise DecodeError(f"Malformed OSC message: {exc}") from exc

    type_tags, tagged = _read_type_tags(data)
    if not type_tags.startswith(","):
        raise DecodeError(f"OSC type tags must start with ',': {type_tags!r}")
    supported = {arg_type.value: arg_type for arg_type in ArgType}
    for tag in type_tags[1:]:
        if tag not in supported:
            raise DecodeError(f"Unsupported OSC type tag: {tag!r}")

    params = parsed.params
    if len(params) != len(type_tags) - 1:
        raise DecodeError(f"Expected {len(type_tags) - 1} arguments, parsed {len(params)}")
    message = OscMessage(
        parsed.address,
        tuple(OscArg(supported[tag], value) for tag, value in zip(type_tags[1:], params)),
    )

    # Tag-less message (pre-1.0 senders): address only, no arguments
    if not tagged:
        canonical = osc_types.write_string(message.address)
    else:
        try:
            canonical = encode_message(message)
        except EncodeError as exc:
            raise DecodeError(f"Malformed OSC message: {exc}") from exc
    if canonical != data:
        raise DecodeError(
            "Datagram is not a canonical OSC message (truncated, bad padding or trailing bytes)"
        )
    return message
