"""
Clive type registry.

Maps the annotation of a descriptor field to the handler that knows how to
declare it to the parser and how to write values into it.

Supported annotations
- int (64-bit signed range), Int64, Uint, Uint64 (0 .. 2**64 - 1)
- Float32 (narrowed through IEEE-754 single precision), float
- bool, str, datetime.timedelta (Go-style "1h5m10s")
- Counter (occurrence counting)
- enum.Enum subclasses and any class with a from_text(bytes) classmethod
- list[T] of all of the above except Counter
- Optional[T] of any supported T (None until first assigned)

Every entry exposes
- predicate(tp): whether the entry handles annotation tp
- new_flag(meta): the Option/Flag declared to the parser
- from_string(slot, text): parse text and write it into slot
- from_context(slot, name, ctx): read the parsed flag from the context
- from_strings(slot, items): variadic positional binding (list entries only)
- zero(tp): the value a fresh, unbound field starts with
"""
import enum
import functools
import math
import re
import struct
import types
import typing
from datetime import timedelta
from fractions import Fraction

from .faults import UnsupportedTypeError
from .flags import Option, Flag
from .tags import parse_bool
from .utils import Unset

Int64 = typing.NewType("Int64", int)
Uint = typing.NewType("Uint", int)
Uint64 = typing.NewType("Uint64", int)
Float32 = typing.NewType("Float32", float)
Float64 = float
Duration = timedelta


class Counter:
    """
    Field type bound by counting flag occurrences.

        class Tool:
            command: Command = Command("shortOpt")
            verbose: Counter = tag("alias:v")

    With shortOpt on the command or the field, '-vvv' and
    '--verbose --verbose --verbose' both yield verbose.value == 3. Without it
    the flag takes an integer, so '--verbose=3' yields the same. A default or
    positional is always parsed as an integer.
    """
    __slots__ = ("value",)

    def __init__(self, value=0, /):
        self.value = value

    def __eq__(self, other):
        if isinstance(other, Counter):
            return self.value == other.value
        return NotImplemented

    def __repr__(self):
        return f"Counter({self.value})"


class Slot:
    """
    A writable location: an attribute on an owner object with its declared type.
    """
    __slots__ = ("owner", "attribute", "type")

    def __init__(self, owner, attribute, type, /):
        self.owner = owner
        self.attribute = attribute
        self.type = type

    def get(self):
        return getattr(self.owner, self.attribute)

    def set(self, value):
        setattr(self.owner, self.attribute, value)

    def narrow(self, type, /):
        return Slot(self.owner, self.attribute, type)

    def __repr__(self):
        return f"slot({type(self.owner).__name__}.{self.attribute}: {self.type!r})"


def check_type(slot, entry, /):
    """
    Guard against writing through an entry that does not handle the slot's type.

    A mismatch means the registry was consulted with the wrong entry, which is
    a programmer error rather than bad input.
    """
    if not entry.predicate(slot.type):
        raise TypeError(f"wrong type in {slot!r}: expected a {type(entry).__name__} compatible type")


def optional(tp, /):
    """
    Return T for Optional[T] / T | None, otherwise Unset.
    """
    if typing.get_origin(tp) in (typing.Union, types.UnionType):
        arguments = typing.get_args(tp)
        if len(arguments) == 2 and type(None) in arguments:
            return next(argument for argument in arguments if argument is not type(None))
    return Unset


def variants(tp, /):
    """
    Accepted string tags of a variant-enumerating type, or None.

    Looks through Optional[...] and list[...]; enum classes enumerate their
    members unless they define variants() themselves.
    """
    if (inner := optional(tp)) is not Unset:
        return variants(inner)
    if typing.get_origin(tp) is list:
        return variants(typing.get_args(tp)[0])
    if typing.get_origin(tp) is not None or not isinstance(tp, type):
        return None
    if callable(getattr(tp, "variants", None)):
        return [str(variant) for variant in tp.variants()]
    if issubclass(tp, enum.Enum):
        return [_spelling(member) for member in tp]
    return None


def _spelling(member):
    return member.value if isinstance(member.value, str) else member.name


# --- converters -----------------------------------------------------------

def _integer(minimum, maximum, signed):
    pattern = re.compile(r"[+-]?\d+" if signed else r"\d+")

    def parse(text):
        if not pattern.fullmatch(text):
            raise ValueError(f"invalid syntax for integer: {text!r}")
        if not minimum <= (value := int(text)) <= maximum:
            raise ValueError(f"value out of range: {text!r}")
        return value
    return parse


_int64 = _integer(-2 ** 63, 2 ** 63 - 1, True)
_uint64 = _integer(0, 2 ** 64 - 1, False)


def _float(text):
    if text != text.strip() or "_" in text:
        raise ValueError(f"invalid syntax for float: {text!r}")
    return float(text)


def _narrow32(value):
    """
    Round a double to the nearest single-precision value (precision loss accepted).
    """
    if math.isnan(value) or math.isinf(value):
        return value
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        raise ValueError(f"value out of range for float32: {value!r}") from None


def _float32(text):
    return _narrow32(_float(text))


def _string(text):
    return text


_DURATION = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

# microseconds per unit
_UNITS = {
    "ns": Fraction(1, 1000),
    "us": Fraction(1),
    "µs": Fraction(1),
    "μs": Fraction(1),
    "ms": Fraction(1000),
    "s": Fraction(1000000),
    "m": Fraction(60000000),
    "h": Fraction(3600000000),
}


def parse_duration(text, /):
    """
    Parse a Go-style duration ("300ms", "-1.5h", "1h5m10s") into a timedelta.

    Nanoseconds are truncated to the microsecond resolution of timedelta.
    """
    body = text
    sign = 1
    if body[:1] in ("+", "-"):
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration {text!r}")

    total = Fraction(0)
    position = 0
    while position < len(body):
        if not (match := _DURATION.match(body, position)):
            raise ValueError(f"invalid duration {text!r}")
        total += Fraction(match[1]) * _UNITS[match[2]]
        position = match.end()
    return timedelta(microseconds=int(sign * total))


def format_duration(value, /):
    """
    Inverse of parse_duration for help output ("1h5m10s").
    """
    microseconds = value // timedelta(microseconds=1)
    if not microseconds:
        return "0s"
    sign = "-" if microseconds < 0 else ""
    hours, rest = divmod(abs(microseconds), 3600000000)
    minutes, rest = divmod(rest, 60000000)
    seconds = Fraction(rest, 1000000)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{float(seconds):g}s")
    return sign + "".join(parts)


# --- entries --------------------------------------------------------------

class Entry:
    """
    Base registry entry. Subclasses implement predicate/parse/zero; the binding
    operations below are shared.
    """
    variadic = False
    counting = False

    def predicate(self, tp, /):
        raise NotImplementedError

    def parse(self, tp, text, /):
        raise NotImplementedError

    def zero(self, tp, /):
        raise NotImplementedError

    def wide(self, tp, text, /):
        """
        Parse text keeping the widest representation (the parser side of narrow).
        """
        return self.parse(tp, text)

    def narrow(self, tp, value, /):
        """
        Post-process a value read from the parse context (identity by default).
        """
        return value

    def metavar(self, tp, /):
        return "value"

    def default(self, meta, tp=Unset, /):
        """
        The flag default parsed from the tag's string form (Unset when absent).
        """
        if meta.default is Unset:
            return Unset
        return self.parse(meta.type if tp is Unset else tp, meta.default)

    def new_flag(self, meta, tp=Unset, /):
        tp = meta.type if tp is Unset else tp
        return Option(
            meta.name,
            *meta.aliases,
            envs=meta.envs,
            default=self.default(meta, tp),
            type=functools.partial(self.parse, tp),
            multiple=self.variadic,
            metavar=self.metavar(tp),
            descr=meta.usage,
            hidden=meta.hidden,
        )

    def from_string(self, slot, text, /):
        check_type(slot, self)
        slot.set(self.parse(slot.type, text))

    def from_context(self, slot, name, ctx, /):
        check_type(slot, self)
        slot.set(self.narrow(slot.type, ctx.value(name)))

    def from_strings(self, slot, items, /):
        raise TypeError(f"{type(self).__name__} cannot bind a variadic positional")


class ScalarEntry(Entry):
    """
    One concrete scalar type with its converter and zero value.
    """

    def __init__(self, type, converter, zero, metavar, narrow=None, wide=None):
        self.type = type
        self.converter = converter
        self._zero = zero
        self._metavar = metavar
        self._narrow = narrow
        self._wide = wide

    def __repr__(self):
        return f"scalar-entry({getattr(self.type, '__name__', self.type)})"

    def predicate(self, tp, /):
        return tp is self.type

    def parse(self, tp, text, /):
        return self.converter(text)

    def wide(self, tp, text, /):
        return self._wide(text) if self._wide else self.converter(text)

    def narrow(self, tp, value, /):
        return self._narrow(value) if self._narrow else value

    def zero(self, tp, /):
        return self._zero

    def metavar(self, tp, /):
        return self._metavar


class BoolEntry(Entry):
    def predicate(self, tp, /):
        return tp is bool

    def parse(self, tp, text, /):
        return parse_bool(text)

    def zero(self, tp, /):
        return False

    def metavar(self, tp, /):
        return "bool"

    def new_flag(self, meta, tp=Unset, /):
        return Flag(
            meta.name,
            *meta.aliases,
            envs=meta.envs,
            default=self.default(meta, bool),
            descr=meta.usage,
            hidden=meta.hidden,
        )

    def from_context(self, slot, name, ctx, /):
        check_type(slot, self)
        slot.set(bool(ctx.value(name)))


class CounterEntry(Entry):
    counting = True

    def predicate(self, tp, /):
        return tp is Counter

    def parse(self, tp, text, /):
        return Counter(_int64(text))

    def zero(self, tp, /):
        return Counter()

    def metavar(self, tp, /):
        return "int"

    def new_flag(self, meta, tp=Unset, /):
        # occurrence counting needs short-option handling, otherwise an integer value
        if not meta.short_opt:
            return super().new_flag(meta, Counter)
        return Flag(
            meta.name,
            *meta.aliases,
            envs=meta.envs,
            default=self.default(meta, Counter).value if meta.default is not Unset else 0,
            counting=True,
            descr=meta.usage,
            hidden=meta.hidden,
        )

    def from_context(self, slot, name, ctx, /):
        check_type(slot, self)
        value = ctx.value(name)
        slot.set(value if isinstance(value, Counter) else Counter(value))


class TextEntry(Entry):
    """
    Enum classes and classes implementing from_text(bytes).

    from_text wins when both are available. Enum members are matched by value
    spelling first, then by member name.
    """

    def predicate(self, tp, /):
        if typing.get_origin(tp) is not None or not isinstance(tp, type):
            return False
        return callable(getattr(tp, "from_text", None)) or issubclass(tp, enum.Enum)

    def parse(self, tp, text, /):
        if callable(getattr(tp, "from_text", None)):
            return tp.from_text(text.encode())
        for member in tp:
            if _spelling(member) == text or str(member.value) == text:
                return member
        try:
            return tp[text]
        except KeyError:
            raise ValueError(f"invalid value {text!r}, possible values: [{", ".join(variants(tp))}]") from None

    def zero(self, tp, /):
        if issubclass(tp, enum.Enum):
            return next(iter(tp))
        try:
            return tp()
        except TypeError:
            return None

    def metavar(self, tp, /):
        return tp.__name__.lower()


class ListEntry(Entry):
    """
    list[T] for every non-counting entry T.

    Strings are split on ','; flags accumulate every occurrence.
    """
    variadic = True

    def __init__(self, entries):
        self.entries = entries

    def _item(self, tp):
        if typing.get_origin(tp) is not list or len(arguments := typing.get_args(tp)) != 1:
            return Unset, None
        for entry in self.entries:
            if not entry.counting and entry.predicate(arguments[0]):
                return arguments[0], entry
        return Unset, None

    def predicate(self, tp, /):
        return self._item(tp)[1] is not None

    def parse(self, tp, text, /):
        item, entry = self._item(tp)
        if not text:
            return []
        return [entry.parse(item, part) for part in text.split(",")]

    def narrow(self, tp, value, /):
        item, entry = self._item(tp)
        return [entry.narrow(item, part) for part in value]

    def zero(self, tp, /):
        return []

    def metavar(self, tp, /):
        item, entry = self._item(tp)
        return entry.metavar(item)

    def new_flag(self, meta, tp=Unset, /):
        tp = meta.type if tp is Unset else tp
        item, entry = self._item(tp)
        # the parser keeps the wide representation, narrowing happens on read
        return Option(
            meta.name,
            *meta.aliases,
            envs=meta.envs,
            default=self.default(meta, tp),
            type=functools.partial(entry.wide, item),
            multiple=True,
            metavar=entry.metavar(item),
            descr=meta.usage,
            hidden=meta.hidden,
        )

    def from_strings(self, slot, items, /):
        check_type(slot, self)
        item, entry = self._item(slot.type)
        slot.set([entry.parse(item, text) for text in items])


class PointerEntry(Entry):
    """
    Optional[T]: starts as None and receives a fresh T on first assignment.
    """

    def __init__(self, inner):
        self.inner = inner
        self.variadic = inner.variadic
        self.counting = inner.counting

    def __repr__(self):
        return f"pointer-entry({self.inner!r})"

    def predicate(self, tp, /):
        return (inner := optional(tp)) is not Unset and self.inner.predicate(inner)

    def parse(self, tp, text, /):
        return self.inner.parse(optional(tp), text)

    def narrow(self, tp, value, /):
        return self.inner.narrow(optional(tp), value)

    def zero(self, tp, /):
        return None

    def metavar(self, tp, /):
        return self.inner.metavar(optional(tp))

    def new_flag(self, meta, tp=Unset, /):
        tp = meta.type if tp is Unset else tp
        return self.inner.new_flag(meta, optional(tp))

    def from_string(self, slot, text, /):
        check_type(slot, self)
        self.inner.from_string(slot.narrow(optional(slot.type)), text)

    def from_context(self, slot, name, ctx, /):
        check_type(slot, self)
        self.inner.from_context(slot.narrow(optional(slot.type)), name, ctx)

    def from_strings(self, slot, items, /):
        check_type(slot, self)
        self.inner.from_strings(slot.narrow(optional(slot.type)), items)


_SCALARS = (
    ScalarEntry(int, _int64, 0, "int"),
    ScalarEntry(Int64, _int64, 0, "int"),
    ScalarEntry(Uint, _uint64, 0, "uint"),
    ScalarEntry(Uint64, _uint64, 0, "uint"),
    ScalarEntry(Float32, _float32, 0.0, "float", narrow=_narrow32, wide=_float),
    ScalarEntry(float, _float, 0.0, "float"),
    ScalarEntry(str, _string, "", "string"),
    ScalarEntry(timedelta, parse_duration, timedelta(0), "duration"),
    BoolEntry(),
    CounterEntry(),
    TextEntry(),
)

REGISTRY = _SCALARS + (ListEntry(_SCALARS),)
"""
Entries in registration order; lookup() returns the first whose predicate matches.
"""


def lookup(tp, /):
    """
    Find the entry for an annotation, wrapping Optional layers in PointerEntry.

    Raises
    - UnsupportedTypeError: when no entry handles the annotation.
    """
    if (inner := optional(tp)) is not Unset:
        return PointerEntry(lookup(inner))
    for entry in REGISTRY:
        if entry.predicate(tp):
            return entry
    raise UnsupportedTypeError(f"unsupported field type {tp!r}", type=tp)


__all__ = (
    "Int64",
    "Uint",
    "Uint64",
    "Float32",
    "Float64",
    "Duration",
    "Counter",
    "Slot",
    "Entry",
    "ScalarEntry",
    "BoolEntry",
    "CounterEntry",
    "TextEntry",
    "ListEntry",
    "PointerEntry",
    "REGISTRY",
    "check_type",
    "optional",
    "variants",
    "lookup",
    "parse_duration",
    "format_duration",
)
