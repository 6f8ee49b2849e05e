"""
Clive utilities shared by the parser layer and the binding engine.

Contents
- Unset: falsey sentinel for "not provided", distinct from None.
- coalesce(value, default): Unset → default, everything else kept.
- rename("name"): decorator pinning __name__/__qualname__ on generated methods.
- mirror("attr"): read-only property over self._attr (containers are copied).
- words / kebab / screaming_snake: identifier splitting for flag and env names.
- ordinal(n): "first", "second", ..., "11th", "22nd" for fault messages.

    >>> kebab("ApiAddress"), screaming_snake("input-role")
    ('api-address', 'INPUT_ROLE')
    >>> coalesce(Unset, 8080), coalesce(None, 8080)
    (8080, None)
"""
import functools
import re
from typing import final


@final
class UnsetType:
    """
    Type of the Unset sentinel.

    There is exactly one instance; it is falsey, prints as "Unset", cannot be
    subclassed, and composes with `|` so `str | Unset` works in isinstance().
    """

    def __or__(self, other, /):
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()


def coalesce(object, default=None, /):
    """
    Return object, or default when object is Unset.

    None, 0, "" and [] are real values and pass through untouched.
    """
    return default if object is Unset else object


def rename(name, /):
    """
    Decorator that gives a generated function a stable name for tracebacks.

        @rename("__repr__")
        def __repr__(self): ...
    """
    if not isinstance(name, str):
        raise TypeError("rename() argument must be a string")

    def decorator(function):
        if not callable(function):
            raise TypeError("rename() must decorate a callable")
        function.__name__ = function.__qualname__ = name
        return function

    return decorator


def _detached(object):
    # fresh copies of the plain containers specs store (tuples are immutable)
    match object:
        case list():
            return [_detached(item) for item in object]
        case dict():
            return {key: _detached(value) for key, value in object.items()}
        case set():
            return set(object)
        case _:
            return object


def mirror(name, /):
    """
    Read-only property named `name` that returns a copy of `self._<name>`.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _detached(getattr(self, "_" + name))

    return property(getter)


# acronyms, capitalized words, lowercase runs, digit runs
_WORDS = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")


@functools.cache
def words(text, /):
    """
    Split an identifier into words.

    - words("ApplicationAPIAddress") -> ("Application", "API", "Address")
    - words("api_address")           -> ("api", "address")
    - words("uints64")               -> ("uints", "64")
    """
    if not isinstance(text, str):
        raise TypeError("words() argument must be a string")
    return tuple(_WORDS.findall(text))


def kebab(text, /):
    return "-".join(word.lower() for word in words(text))


def screaming_snake(text, /):
    return "_".join(word.upper() for word in words(text))


_ORDINALS = ("first", "second", "third", "fourth", "fifth", "sixth", "seventh", "eighth", "ninth", "tenth")


@functools.cache
def ordinal(number, /):
    """
    Position label for messages: words up to ten, then 11th, 21st, 112th...
    """
    if 1 <= number <= len(_ORDINALS):
        return _ORDINALS[number - 1]
    if number % 100 in (11, 12, 13):
        return f"{number}th"
    return f"{number}{({1: "st", 2: "nd", 3: "rd"}).get(number % 10, "th")}"


__all__ = (
    "Unset",
    "UnsetType",
    "coalesce",
    "rename",
    "mirror",
    "words",
    "kebab",
    "screaming_snake",
    "ordinal",
)
