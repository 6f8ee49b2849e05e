r"""
Clive flag specifications for the parser layer.

Overview
- Option: named, value-bearing flag (e.g., --api-address 0.0.0.0, -a=0.0.0.0).
  • multiple=True accumulates every occurrence (each split on ',').
- Flag: named, presence-only switch (e.g., --verbose, -v).
  • counting=True counts occurrences (-vvv ⇒ 3) instead of reading a boolean.

Both are produced by the type registry from a field's metadata; users rarely
build them by hand.

Metadata (sanitized on construction)
- names: Iterable[str] of bare names (no leading dashes); the first is primary.
  Single-character names render as "-x", longer ones as "--name".
- envs: environment variables consulted when the flag is absent from argv.
- default: value used when neither argv nor environment provide one.
- descr: Unset | str (short help), non-empty when provided.
- hidden: bool (suppresses from help).
- Option only: type (converter str → value), multiple, metavar.
- Flag only: counting.

Validation highlights
- Names must match r"[^\W\d_](-?[^\W_]+)*" and be unique within a spec.
- descr/metavar strings are trimmed; empty strings are rejected.
"""
import functools
import operator
import re
from collections.abc import Iterable

from rich.text import Text

from .utils import *


class ArgumentType(type):
    """
    Metaclass that gives flag specs a stable repr and read-only properties.

    Every name in __introspectable__ becomes a mirror() property and is listed
    by __repr__/__rich_repr__ (e.g. option(names=('port', 'p'), envs=('PORT',), ...)).
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__introspectable__:
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: normalize and validate metadata shared by Option and Flag.

    - names: at least one, each a valid bare name, no duplicates; order kept.
    - envs: iterable of non-empty strings (duplicates dropped, order kept).
    - descr: Unset | str | Text, trimmed and non-empty when provided.
    - hidden: coerced to bool.

    Raises
    - TypeError: wrong value types.
    - ValueError: empty strings, invalid names, duplicates.
    """
    names = []
    if not metadata["names"]:
        raise TypeError(f"{cls.__typename__} must specify at least one name")

    for name in metadata["names"]:
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} names must be strings")
        elif not (name := name.strip()):
            raise ValueError(f"{cls.__typename__} names cannot be empty-strings")
        elif not re.fullmatch(r"[^\W\d_](-?[^\W_]+)*", name):
            raise ValueError(f"{cls.__typename__} name {name!r} must be a valid shell-style option name")
        elif name in names:
            raise ValueError(f"{cls.__typename__} names cannot contain duplicates")
        names.append(name)
    metadata["names"] = tuple(names)

    if not isinstance(envs := metadata["envs"], Iterable) or isinstance(envs, str):
        raise TypeError(f"{cls.__typename__} 'envs' must be an iterable of strings")
    for env in envs:
        if not isinstance(env, str) or not env.strip():
            raise ValueError(f"{cls.__typename__} 'envs' must contain non-empty strings")
    metadata["envs"] = tuple(dict.fromkeys(env.strip() for env in envs))

    if not isinstance(descr := metadata["descr"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif isinstance(descr, str) and not (descr := descr.strip()):
        descr = Unset
    metadata["descr"] = coalesce(descr)

    metadata["hidden"] = bool(metadata["hidden"])


class Option(metaclass=ArgumentType):
    """
    Named, value-bearing flag specification.

    Properties
    - The names listed in __introspectable__ are exposed as read-only attributes
      on instances, mirroring the sanitized metadata values.
    """

    __introspectable__ = (
        "names",
        "envs",
        "default",
        "type",
        "multiple",
        "metavar",
        "descr",
        "hidden",
    )

    def __init__(
            self,
            *names,
            envs=(),
            default=Unset,
            type=str,
            multiple=False,
            metavar=Unset,
            descr=Unset,
            hidden=False,
    ):
        """
        Construct an Option spec.

        Parameters
        - names: one or more bare names; the first is the primary name.
        - envs: environment variable names consulted when absent from argv.
        - default: value used when no source provides one (Unset when none).
        - type: converter applied to each raw string (must raise ValueError on bad input).
        - multiple: accumulate every occurrence; each occurrence is split on ','.
        - metavar: label for the value in help (defaults to "value").
        - descr: short help text.
        - hidden: suppress from help output.
        """
        metadata = {
            "names": names,
            "envs": envs,
            "default": default,
            "type": type,
            "multiple": bool(multiple),
            "metavar": metavar,
            "descr": descr,
            "hidden": hidden,
        }
        _sanitize_metadata(Option, metadata)

        if not callable(metadata["type"]):
            raise TypeError(f"{Option.__typename__} 'type' must be callable")
        if not isinstance(metavar := metadata["metavar"], str | Unset):
            raise TypeError(f"{Option.__typename__} 'metavar' must be a string")
        elif isinstance(metavar, str) and not (metavar := metavar.strip()):
            raise ValueError(f"{Option.__typename__} 'metavar' cannot be empty")
        metadata["metavar"] = coalesce(metavar, "value")

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def name(self):
        return self._names[0]

    def convert(self, text, /):
        """
        Convert one raw occurrence (or env value) into its typed value.

        Multiple options split the raw text on ',' and convert every item,
        returning a list.
        """
        if not self._multiple:
            return self._type(text)
        if not text:
            return []
        return [self._type(item) for item in text.split(",")]


class Flag(metaclass=ArgumentType):
    """
    Named, presence-only flag specification.

    A plain flag reads as a boolean (presence means True, '--name=false' is
    accepted). A counting flag reads as the number of occurrences.
    """

    __introspectable__ = (
        "names",
        "envs",
        "default",
        "counting",
        "descr",
        "hidden",
    )

    def __init__(
            self,
            *names,
            envs=(),
            default=Unset,
            counting=False,
            descr=Unset,
            hidden=False,
    ):
        metadata = {
            "names": names,
            "envs": envs,
            "default": default,
            "counting": bool(counting),
            "descr": descr,
            "hidden": hidden,
        }
        _sanitize_metadata(Flag, metadata)
        metadata["default"] = coalesce(metadata["default"], 0 if metadata["counting"] else False)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def name(self):
        return self._names[0]

    @property
    def metavar(self):
        return None


__all__ = (
    "Option",
    "Flag",
)

del ArgumentType
