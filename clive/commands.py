"""
Clive command layer: the parser that drives bound descriptors.

What this module provides
- Program: one node of a command tree (flags, positional usage, lifecycle hooks,
  children). Built by the assembler from descriptors, but usable directly.
- Application: the root Program. Owns the metadata store used by the context
  router, a version string, and the run()/main() entry points.
- Context: the per-command query interface handed to hooks (is_set, string,
  strings, value, count, args).

Parsing rules
- '--name=value', '--name value', '-n value' and '-name' forms; single and
  double dashes are interchangeable.
- '--' ends flag parsing; everything after it is positional.
- negative numbers ('-5', '-1.5') are positional.
- short-option bundles ('-vvv', '-xv') only for programs with short_options,
  and only when every letter names a presence flag.
- the first positional token routes to a child (by name or alias) when the
  program has children; a program with children and no positional usage
  rejects unknown tokens with a suggestion.
- environment variables back every flag that is absent from argv.

Lifecycle
- before hooks run root→leaf, then the leaf action, then after hooks leaf→root.
  A failing before/action skips the remaining before/action hooks; after hooks
  always run.

Help and version
- '-h/--help' on every program and '-v/--version' on applications with a
  version, unless those names are already taken. Both are rendered with rich.
"""
import difflib
import functools
import operator
import os
import re
import shlex
import sys
from collections import defaultdict, deque
from collections.abc import Iterable
from datetime import timedelta

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .faults import *
from .flags import Option, Flag
from .registry import format_duration
from .tags import parse_bool
from .utils import *

# negative numbers are positionals, not switches
_NUMBER = re.compile(r"-\d+(\.\d*)?([eE][+-]?\d+)?|-\.\d+")
_SWITCH = re.compile(r"(?P<input>--?(?P<name>[^\W\d_](-?[^\W_]+)*))(=(?P<value>[^\r\n]*))?")


class ProgramType(type):
    """
    Metaclass that gives programs a stable repr and read-only properties.

    - __typename__ is derived from the class name (camel-case split with hyphens).
    - every name in __introspectable__ becomes a mirror() property.
    - __displayable__ narrows what __rich_repr__ shows.
    """
    __introspectable__ = ()
    __displayable__ = Unset

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
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _process_strings(cls, metadata, *names):
    """
    Normalize scalar string/Text metadata fields.

    - Validates type: each value must be str | Text | Unset.
    - Trims strings; empty strings become None.
    """
    for name in names:
        if not isinstance(object := metadata[name], str | Text | Unset):
            raise TypeError(f"{cls.__typename__} {name!r} must be a string")
        elif isinstance(object, str) and not (object := object.strip()):
            object = Unset
        metadata[name] = coalesce(object)


def _process_callables(cls, metadata, *names):
    for name in names:
        if not (metadata[name] is Unset or callable(metadata[name])):
            raise TypeError(f"{cls.__typename__} {name!r} must be callable")
        metadata[name] = coalesce(metadata[name])


def _process_flags(cls, metadata):
    """
    Index flags by every name and alias; names must be unique per program.
    """
    switches = {}
    for flag in metadata["flags"]:
        if not isinstance(flag, Option | Flag):
            raise TypeError(f"{cls.__typename__} flags must be options or flags")
        for name in flag.names:
            if switches.setdefault(name, flag) is not flag:
                raise DuplicateNameError(
                    f"{cls.__typename__} {metadata['name']!r} flag name {name!r} is already in use",
                    name=name,
                    program=metadata["name"],
                )
    metadata["flags"] = list(metadata["flags"])
    metadata["switches"] = switches


def _attach_to_parent(self, parent):
    """
    Register this program under its parent, enforcing unique names and aliases.
    """
    if self._parent is not None:
        raise ValueError(f"{type(self).__typename__} {self.name!r} is already attached")
    for name in (self.name, *self.aliases):
        if parent._routes.setdefault(name, self) is not self:
            typeof = "subcommand" if parent.parent else "command"
            raise DuplicateNameError(
                f"{type(self).__typename__} {typeof} name {name!r} is already in use",
                name=name,
                program=parent.name,
            )
    parent._children[self.name] = self
    self._parent = parent


class Context:
    """
    Per-command view of a parse.

    Attributes
    - program: the Program this context belongs to.
    - parent: the ancestor's Context (None at the root).
    - args: positional tokens left for this program.

    Lookups accept any name or alias of a flag declared on this program.
    """

    def __init__(self, program, parent, args, values, /):
        self.program = program
        self.parent = parent
        self.args = list(args)
        self._values = values

    def __repr__(self):
        return f"context(program={self.program.name!r}, args={self.args!r}, values={dict(self._values)!r})"

    @property
    def application(self):
        return self.program.root

    @property
    def lineage(self):
        """
        Contexts from the root to this one.
        """
        lineage = [context := self]
        while context.parent is not None:
            lineage.append(context := context.parent)
        return tuple(reversed(lineage))

    def _flag(self, name):
        try:
            return self.program._switches[name]
        except KeyError:
            raise KeyError(f"no flag named {name!r} on {self.program.name!r}") from None

    @staticmethod
    def _environ(flag):
        for env in flag.envs:
            if value := os.environ.get(env):
                return value
        return None

    def is_set(self, name, /):
        """
        Whether the flag was given on the command line or through its environment.
        """
        flag = self._flag(name)
        return bool(self._values.get(flag.name)) or self._environ(flag) is not None

    def strings(self, name, /):
        """
        Every raw occurrence from argv, else the environment value, else [].
        """
        flag = self._flag(name)
        if raw := self._values.get(flag.name):
            return list(raw)
        if (env := self._environ(flag)) is not None:
            return [env]
        return []

    def string(self, name, /):
        """
        The last raw occurrence (or environment value); None when absent.
        """
        return next(reversed(self.strings(name)), None)

    def count(self, name, /):
        """
        Occurrences of a flag; counting flags fall back to env then default.
        """
        flag = self._flag(name)
        if raw := self._values.get(flag.name):
            return len(raw)
        if (env := self._environ(flag)) is not None:
            return int(env)
        return flag.default if isinstance(flag, Flag) and flag.counting else 0

    def value(self, name, /):
        """
        The typed value of a flag: argv, then environment, then its default.

        Raises ValueError when a raw string does not convert.
        """
        flag = self._flag(name)
        if isinstance(flag, Flag):
            if flag.counting:
                return self.count(name)
            if raw := self._values.get(flag.name):
                return parse_bool(raw[-1])
            if (env := self._environ(flag)) is not None:
                return parse_bool(env)
            return flag.default

        if raw := self._values.get(flag.name):
            if flag.multiple:
                return [item for text in raw for item in flag.convert(text)]
            return flag.convert(raw[-1])
        if (env := self._environ(flag)) is not None:
            return flag.convert(env)
        return coalesce(flag.default)


class Program(metaclass=ProgramType):
    """
    One node of a command tree.

    Responsibilities
    - Introspection: metadata exposed as read-only properties.
    - Composition: children are attached at construction (names and aliases unique).
    - Parsing: tokens are resolved against this program's flags, then routed to
      a child or kept as positionals.
    - Rendering: rich help screen (see show_help).
    """

    __introspectable__ = (
        "name",
        "usage",
        "description",
        "aliases",
        "flags",
        "args_usage",
        "short_options",
        "hidden",
        "parent",
        "children",
        "colorful",
        "fancy",
    )

    __displayable__ = (
        "name",
        "usage",
        "aliases",
        "args_usage",
        "short_options",
        "children",
    )

    def __init__(
            self,
            name,
            /,
            usage=Unset,
            description=Unset,
            aliases=(),
            flags=(),
            args_usage=Unset,
            short_options=False,
            hidden=False,
            before=Unset,
            action=Unset,
            after=Unset,
            children=(),
            *,
            colorful=False,
            fancy=False,
    ):
        """
        Construct a program.

        Parameters
        - name: str, the command name used for routing.
        - usage: one-line summary (shown in parent's command table).
        - description: long-form description (shown in this program's help).
        - aliases: alternative routing names.
        - flags: Option/Flag specs.
        - args_usage: positional usage string (e.g. "NAME [VALUE]").
        - short_options: enable '-abc' bundles of presence flags.
        - hidden: omit from the parent's command table.
        - before/action/after: hooks called with this program's Context.
        - children: Programs to attach beneath this one.
        - colorful/fancy: rendering switches for help and faults.
        """
        metadata = {
            "name": name,
            "usage": usage,
            "description": description,
            "aliases": tuple(aliases),
            "flags": flags,
            "args_usage": args_usage,
            "short_options": bool(short_options),
            "hidden": bool(hidden),
            "before": before,
            "action": action,
            "after": after,
            "colorful": bool(colorful),
            "fancy": bool(fancy),
        }
        if not isinstance(name, str) or not name.strip():
            raise TypeError(f"{type(self).__typename__} 'name' must be a non-empty string")
        _process_strings(type(self), metadata, "name", "usage", "description", "args_usage")
        _process_callables(type(self), metadata, "before", "action", "after")
        _process_flags(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        self._parent = None
        self._children = {}
        self._routes = {}

        # built-in help flag unless the names are taken
        if all(name not in self._switches for name in ("help", "h")):
            self._helper = Flag("help", "h", descr="show help")
            self._switches.update(dict.fromkeys(("help", "h"), self._helper))
        else:
            self._helper = None

        for child in children:
            if not isinstance(child, Program) or isinstance(child, Application):
                raise TypeError(f"{type(self).__typename__} children must be programs")
            _attach_to_parent(child, self)

    @property
    def root(self):
        """
        The topmost program of this tree.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Programs from the root to this one.
        """
        path = [program := self]
        while program.parent:
            path.append(program := program.parent)
        return tuple(reversed(path))

    @property
    def route(self):
        return " ".join(step.name for step in self.path)

    def trigger(self, fault, /):
        """
        Attach this program to a fault and raise it.
        """
        trigger(fault, tool=self, shell=False, colorful=self.colorful, fancy=self.fancy)

    def _resolve_token(self, token, index):
        r"""
        resolve a switch token into [(flag, input, value)].

        - shape: (?P<input>--?<name>)(=(?P<value>...))?
        - a bundle like '-vvv' expands into one entry per letter when the
          program has short_options and every letter is a presence flag.
        - unknown names raise UnknownSwitchError with close-match suggestions.
        """
        if not (match := _SWITCH.fullmatch(token)):
            return self.trigger(MalformedTokenError(
                "bad form of option or flag %r at %s position" % (token, ordinal(index)),
                title="malformed option or flag",
                code=FaultCode.MALFORMED_TOKEN,
                hint="try '%s --help' to see valid spellings and forms (e.g., --name=value)" % self.route,
                token=token,
                index=index,
            ))

        input, name, value = match["input"], match["name"], match["value"]

        if flag := self._switches.get(name):
            return [(flag, input, value)]

        if (
            self.short_options and
            not input.startswith("--") and
            value is None and
            all(isinstance(self._switches.get(letter), Flag) for letter in name)
        ):
            return [(self._switches[letter], "-" + letter, None) for letter in name]

        suggestions = difflib.get_close_matches(name, self._switches.keys(), 5)
        try:
            hint = "did you mean %r? you can also run '%s --help' to see all options" % (
                ("-" if len(suggestions[0]) == 1 else "--") + suggestions[0], self.route
            )
        except IndexError:
            hint = "try '%s --help' to see all available options" % self.route
        return self.trigger(UnknownSwitchError(
            "unknown option or flag %r at %s position" % (input, ordinal(index)),
            title="unknown option or flag",
            code=FaultCode.UNKNOWN_SWITCH,
            input=input,
            index=index,
            suggestions=suggestions,
            hint=hint,
        ))

    def _parseargs(self, tokens, parent=None, *, index=1):
        """
        parse tokens for this program and, when routed, its descendants.

        returns the leaf Context, or None when a help/version flag terminated
        the parse (the screen has already been printed).
        """
        values = defaultdict(list)
        args = []

        while tokens:
            token = tokens.popleft()

            if token == "--":
                args.extend(tokens)
                tokens.clear()
                break

            if token.startswith("-") and token != "-" and not _NUMBER.fullmatch(token):
                for flag, input, value in self._resolve_token(token, index):
                    if flag is self._helper:
                        self.show_help()
                        return None
                    if flag is getattr(self, "_versioner", None):
                        self.show_version()
                        return None

                    if isinstance(flag, Flag):
                        if flag.counting and value is not None:
                            self.trigger(FlagAssignmentError(
                                "flag %r at %s position cannot have an inline value" % (input, ordinal(index)),
                                title="flag cannot take a value",
                                code=FaultCode.FLAG_ASSIGNMENT,
                                input=input,
                                index=index,
                                hint="remove everything from '=' (for example: %s)" % input,
                            ))
                        values[flag.name].append("true" if value is None else value)
                        continue

                    if value is None:
                        if not tokens:
                            self.trigger(OptionValueRequiredError(
                                "option %r at %s position requires a value" % (input, ordinal(index)),
                                title="missing option value",
                                code=FaultCode.OPTION_VALUE_REQUIRED,
                                input=input,
                                index=index,
                                hint="pass a value after it (for example: %s=<%s>)" % (input, flag.metavar),
                            ))
                        value = tokens.popleft()
                        index += 1
                    values[flag.name].append(value)
                index += 1
                continue

            if self._children and not args:
                if child := self._routes.get(token):
                    return child._parseargs(tokens, Context(self, parent, (), values), index=index + 1)
                if not self.args_usage:
                    suggestions = difflib.get_close_matches(token, self._routes.keys(), 5)
                    typeof = "subcommand" if self.parent else "command"
                    try:
                        hint = "did you mean %r? you can also run '%s --help' to see available %ss" % (
                            suggestions[0], self.route, typeof
                        )
                    except IndexError:
                        hint = "run '%s --help' to see available %ss" % (self.route, typeof)
                    self.trigger((UnknownSubcommandError if self.parent else UnknownCommandError)(
                        "unknown %s %r at %s position" % (typeof, token, ordinal(index)),
                        title="unknown %s" % typeof,
                        code=FaultCode.UNKNOWN_SUBCOMMAND if self.parent else FaultCode.UNKNOWN_COMMAND,
                        input=token,
                        index=index,
                        suggestions=suggestions,
                        hint=hint,
                    ))

            args.append(token)
            index += 1

        return Context(self, parent, args, values)

    def _execute(self, lineage, depth=0):
        context = lineage[depth]
        try:
            if self._before:
                self._before(context)
            if depth + 1 < len(lineage):
                lineage[depth + 1].program._execute(lineage, depth + 1)
            elif self._action:
                self._action(context)
            else:
                self.show_help()
        except BaseException as error:
            # the first failure wins over one raised by after()
            if self._after:
                try:
                    self._after(context)
                except Exception as secondary:
                    error.add_note(f"after() of {self.name!r} also failed: {secondary!r}")
            raise
        if self._after:
            self._after(context)

    def show_help(self, *, stderr=False):
        """
        Render this program's help screen.

        Palette keys
        - usage-label, program-name, usage-section, description-section
        - group-label, option-name, flag-name, metavar, argument-description, env, default
        - children-title, children-table, children, children-description

        Customization
        - Define a mapping named __styles__ in __main__ to override any palette entry.
        """
        console = Console(stderr=stderr)
        styles = defaultdict(str, {
            "usage-label": "bold #00E6FF",
            "program-name": "bold #FF4D94",
            "usage-section": "bold #36C5F0",
            "description-section": "italic #A3A3A3",

            "group-label": "bold #FFFFFF",
            "argument-description": "#9CA3AF",
            "option-name": "bold #00E6FF",
            "flag-name": "bold #22C55E",
            "metavar": "bold #FFD600",
            "env": "#737373",
            "default": "#737373",

            "children-title": "bold #FFFFFF",
            "children-table": "#4B5563",
            "children": "bold #36C5F0",
            "children-description": "#9CA3AF",

            "panel-title": "bold #FF4D94",
        } | getattr(__import__("__main__"), "__styles__", {}))

        def styler(style):
            return styles[style] if self.colorful else ""

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if not self.colorful:
                return Text(str(fragment))
            if isinstance(fragment, Text):
                return fragment
            return Text(str(fragment), style)

        def names(flag):
            style = "option-name" if isinstance(flag, Option) else "flag-name"
            spellings = sorted((("-" if len(name) == 1 else "--") + name for name in flag.names), key=len)
            return Text(", ").join(text(spelling, styler(style)) for spelling in spellings)

        renders = []
        width = console.width - 4 * self.fancy

        usage = Text()
        usage.append(text("usage", styler("usage-label"))).append(": ")
        usage.append(text(self.route, styler("program-name")))
        usage.append(text(" [options]", styler("usage-section")))
        if self._children:
            usage.append(text(" command", styler("usage-section")))
        if self.args_usage:
            usage.append(" ").append(text(self.args_usage, styler("usage-section")))
        renders.append(usage.append("\n"))

        if description := self.description or self.usage:
            renders.append(text(description, styler("description-section")).append("\n"))

        if children := [child for child in self._children.values() if not child.hidden]:
            table = Table(
                "name", "help",
                title=text("subcommands" if self.parent else "commands", styler("children-title")),
                width=int(width * (2 / 3)),
                box=ROUNDED,
                style=styler("children-table"),
                header_style=styler("children-title"),
            )
            for child in children:
                table.add_row(
                    text(", ".join((child.name, *child.aliases)), styler("children")),
                    text(child.usage or child.description or "", styler("children-description")),
                )
            renders.append(table)

        section = Text()
        section.append(text("options", styler("group-label"))).append(":\n")
        indent = 30
        seen = []
        for flag in self._switches.values():
            if flag in seen or flag.hidden:
                continue
            seen.append(flag)
            line = Text("  ").append(names(flag))
            if isinstance(flag, Option):
                line.append(" ").append(text(flag.metavar, styler("metavar")))
            details = Text()
            if flag.descr:
                details.append(text(flag.descr, styler("argument-description")))
            if flag.default not in (Unset, None, False, 0, "", []) and not isinstance(flag.default, bool):
                details.append(text(" (default: %s)" % _display(flag.default), styler("default")))
            if flag.envs:
                details.append(text(" [$%s]" % ", $".join(flag.envs), styler("env")))
            if details:
                if len(line) >= indent:
                    line.append("\n").append(" " * indent)
                else:
                    line.append(" " * (indent - len(line)))
                wrapped = details.wrap(console, max(width - indent, 20))
                for number, segment in enumerate(wrapped):
                    line.append(segment if number == 0 else Text("\n" + " " * indent).append(segment))
            section.append(line).append("\n")
        renders.append(section)

        renders[-1].rstrip()
        renderable = Group(*renders)
        if self.fancy:
            renderable = Panel(
                renderable,
                title=Text.assemble("[ ", f"{self.name} HELP".upper(), " ]", style=styler("panel-title")),
                title_align="left",
            )
        console.print(renderable)

    def show_version(self):
        """
        Render '<name> <version>' for applications that declare a version.
        """
        console = Console()
        version = getattr(self, "version", None) or "unknown"
        if not self.colorful:
            return console.print(Text(f"{self.name} {version}"))
        console.print(Text.assemble((self.name, "bold #FF4D94"), " ", (version, "bold #FFD600")))


def _display(value):
    if isinstance(value, list):
        return ",".join(map(_display, value))
    if isinstance(value, timedelta):
        return format_duration(value)
    if hasattr(value, "name") and hasattr(type(value), "__members__"):
        return value.name
    return str(value)


class Application(Program):
    """
    Root program with the process-facing entry points.

    Adds
    - version: shown by '-v/--version' (flag installed only when a version is set).
    - metadata: mutable mapping shared by every hook of a run (context router store).
    - run(argv): parse and execute; faults propagate as exceptions.
    - main(argv): shell entry point; renders faults with rich and exits with status 1.
    """

    __introspectable__ = Program.__introspectable__ + ("version",)

    def __init__(self, name=Unset, /, *args, version=Unset, **kwargs):
        super().__init__(coalesce(name, os.path.basename(sys.argv[0]) or "app"), *args, **kwargs)
        metadata = {"version": version}
        _process_strings(type(self), metadata, "version")
        self._version = metadata["version"]
        self._metadata = {}

        if self._version and all(name not in self._switches for name in ("version", "v")):
            self._versioner = Flag("version", "v", descr="show version")
            self._switches.update(dict.fromkeys(("version", "v"), self._versioner))

    @property
    def metadata(self):
        return self._metadata

    def run(self, argv=Unset, /):
        """
        Parse argv and execute the matching hooks.

        Parameters
        - argv:
          • Unset: sys.argv.
          • str: shell-like string; split with shlex (argv[0] included).
          • Iterable[str]: argv-like sequence; the first item is the program name.

        Raises
        - CommandException for parse faults and binding failures; anything a
          hook raises propagates unmodified.
        """
        if argv is Unset:
            tokens = sys.argv
        elif isinstance(argv, str):
            tokens = shlex.split(argv)
        elif isinstance(argv, Iterable):
            tokens = list(argv)
            if not all(isinstance(token, str) for token in tokens):
                raise TypeError("run() argument must be a string or an iterable of strings")
        else:
            raise TypeError("run() argument must be a string or an iterable of strings")

        if (context := self._parseargs(deque(tokens[1:]))) is None:
            return
        self._execute(context.lineage)

    def main(self, argv=Unset, /):
        """
        Shell entry point: run, render any fault with rich, exit with status 1.
        """
        try:
            self.run(argv)
        except CommandException as fault:
            trigger(fault, tool=fault.options.get("tool", self), shell=True, colorful=self.colorful, fancy=self.fancy)


__all__ = (
    "Program",
    "Application",
    "Context",
)

del ProgramType
