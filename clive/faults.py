"""
Clive faults (errors) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for all user-facing issues.
  Codes are grouped by domain to keep copy consistent and make logs/searches
  predictable.
- CommandException: base type for run-time faults; carries message + options
  and knows how to render itself in a friendly, lowercased, and actionable way.
  • parser faults (routing, switches)
  • BindError family raised by the value binder
- ConfigError: structural problems found while building a command tree from a
  descriptor. These are programmer errors and always raise.
- RouterError: failed Command.root()/parent()/current() lookups.
- trigger(): central entry point to surface a fault (respecting shell/fancy/colorful).
- getdoc(): optional description lookup for a code from the host application.

Integration
- The parser collects its own faults and raises them; Application.main() renders
  any CommandException with rich and exits with status 1.
"""
import copy
import os
import sys
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the cli (stable identifiers).

    grouping (by high-level domain)
    - routing (1110x)
      • UNKNOWN_COMMAND, UNKNOWN_SUBCOMMAND
    - switches (options/flags) (1111x)
      • MALFORMED_TOKEN, UNKNOWN_SWITCH, FLAG_ASSIGNMENT, OPTION_VALUE_REQUIRED
    - binding (1130x)
      • MISSING_POSITIONAL, TOO_MANY_ARGUMENTS, METHOD_NOT_FOUND, FIELD_ASSIGN

    normalize() allows host remapping to custom labels while keeping code-stability.
    """
    # --- routing errors (11xxx) ---
    UNKNOWN_COMMAND             = 11101
    UNKNOWN_SUBCOMMAND          = 11102

    # --- switch/flag/option errors (11xxx) ---
    MALFORMED_TOKEN             = 11111
    UNKNOWN_SWITCH              = 11112
    FLAG_ASSIGNMENT             = 11113
    OPTION_VALUE_REQUIRED       = 11117

    # --- binding errors (113xx) ---
    MISSING_POSITIONAL          = 11301
    TOO_MANY_ARGUMENTS          = 11302
    METHOD_NOT_FOUND            = 11303
    FIELD_ASSIGN                = 11304

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class CommandException(Exception):
    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message if self.message is not Unset else ""

    def __rich__(self):
        main = __import__("__main__")

        colorful = self.options.get("colorful", False)
        fancy = self.options.get("fancy", False)

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
            "docs": "underline #00E5FF dim",  # host-provided documentation line
        } | getattr(main, "__styles__", {}))

        def styler(style):
            return styles[style] if colorful else ""

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if not colorful:
                return Text(str(fragment))
            if isinstance(fragment, Text):
                return fragment
            return Text(str(fragment), style)

        width = console.width - 4 * fancy

        try:
            name = self.options["tool"].root.name
        except KeyError:
            name = os.path.basename(sys.argv[0])
        prog = text(getattr(main, "__prog__", name), styler("prog-name"))

        code = self.options.get("code")
        header = Text.assemble(
            "[ ",
            prog,
            " — ",
            text(code.normalize() if code else "", styler("code")),
            " | ",
            text(self.options.get("title", "error").title(), styler("error-title")),
            " ]"
        )
        body = [text(self, styler("error-message"))]
        if hint := self.options.get("hint"):
            body.append(Text.assemble(text(" → ", styler("hint-arrow")), text(hint, styler("hint"))))
        if docs := self.options.get("docs") or (getdoc(code) if code else None):
            body.append(text(docs, styler("docs")))

        if fancy:
            return Panel(Group(*body), title=header, title_align="left", width=width)

        return Group(header, *body)

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            raise self
        console.print(self)
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        replaced = type(self)(self.message, **{**self.options, **overrides})
        replaced.__cause__ = self.__cause__
        return replaced


class MalformedTokenError(CommandException): ...
class UnknownSwitchError(CommandException): ...
class FlagAssignmentError(CommandException): ...
class OptionValueRequiredError(CommandException): ...
class UnknownCommandError(CommandException): ...
class UnknownSubcommandError(UnknownCommandError): ...


class BindError(CommandException):
    """
    Base class for failures while moving parsed values into a descriptor.

    The binder raises these from the command's before hook, after printing the
    command help. Particulars are stored in options and exposed as properties
    on the concrete subclasses.
    """


class MissingPositionalError(BindError):
    @property
    def positional(self):
        return self.options.get("positional")


class TooManyArgumentsError(BindError):
    @property
    def remaining(self):
        return tuple(self.options.get("remaining", ()))


class MethodNotFoundError(BindError):
    @property
    def method(self):
        return self.options.get("method")


class FieldAssignError(BindError):
    """
    Wraps the underlying conversion failure (available as __cause__) with the
    field name, its declared type and the source the value came from.
    """

    @property
    def field(self):
        return self.options.get("field")

    @property
    def type(self):
        return self.options.get("type")

    @property
    def source(self):
        return self.options.get("source")


class ConfigError(Exception):
    """
    Structural problem in a descriptor, detected while building.

    Particulars are keyword arguments stored as attributes, so handlers can
    inspect them (e.g. error.field, error.descriptor).
    """

    def __init__(self, message, /, **particulars):
        super().__init__(message)
        self.message = message
        self.__dict__.update(particulars)


class NilDescriptorError(ConfigError, TypeError): ...
class PassedByValueError(ConfigError, TypeError): ...
class WrongFirstFieldError(ConfigError, TypeError): ...
class UnsupportedTypeError(ConfigError, TypeError): ...
class HiddenPositionalError(ConfigError, ValueError): ...
class PositionalAfterVariadicError(ConfigError, ValueError): ...
class InvalidCommandError(ConfigError, ValueError): ...
class OptionalBeforeRequiredError(InvalidCommandError): ...
class DoublePointerSubcommandError(ConfigError, TypeError): ...
class SubcommandByValueError(ConfigError, TypeError): ...
class DuplicateNameError(ConfigError, ValueError): ...
class MissingActionError(ConfigError, TypeError): ...

class TagError(ConfigError, ValueError): ...
class InvalidTagError(TagError): ...
class UnknownTagKeyError(InvalidTagError): ...
class InvalidBooleanError(InvalidTagError): ...


class RouterError(LookupError):
    def __init__(self, message, /, path=Unset):
        super().__init__(message)
        self.message = message
        self.path = path


class NoRootError(RouterError): ...
class NoParentError(RouterError): ...
class NoCurrentError(RouterError): ...


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see CommandException).
    - options are merged into the fault via copy.replace() before triggering.
    - in shell mode, rendering happens via rich console; otherwise, the fault is raised.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode instances and values are short documentation strings.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be an fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "FaultCode",
    "CommandException",
    "MalformedTokenError",
    "UnknownSwitchError",
    "FlagAssignmentError",
    "OptionValueRequiredError",
    "UnknownCommandError",
    "UnknownSubcommandError",
    "BindError",
    "MissingPositionalError",
    "TooManyArgumentsError",
    "MethodNotFoundError",
    "FieldAssignError",
    "ConfigError",
    "NilDescriptorError",
    "PassedByValueError",
    "WrongFirstFieldError",
    "UnsupportedTypeError",
    "HiddenPositionalError",
    "PositionalAfterVariadicError",
    "InvalidCommandError",
    "OptionalBeforeRequiredError",
    "DoublePointerSubcommandError",
    "SubcommandByValueError",
    "DuplicateNameError",
    "MissingActionError",
    "TagError",
    "InvalidTagError",
    "UnknownTagKeyError",
    "InvalidBooleanError",
    "RouterError",
    "NoRootError",
    "NoParentError",
    "NoCurrentError",
    "trigger",
    "getdoc",
)
