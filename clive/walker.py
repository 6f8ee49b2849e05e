"""
Clive metadata walker.

Turns a descriptor instance into a CommandNode tree:

    class Start:
        command: Command = Command("usage:'start services'")
        services: list[str] = tag("positional,required:false")

    class Commands:
        start: Optional[Start]

    class App:
        command: Command = Command("name:svc")
        verbose: bool = tag("alias:v")
        subcommands: Commands

    node = walk(App())

Rules
- the first annotated attribute must be typed Command; its class-level value
  carries the command tag (name, usage, alias, shortOpt, hidden).
- 'subcommands' holds a group class whose Optional[Descriptor] attributes are
  child commands and whose bare group-class attributes are flattened.
- 'run' typed RunFunc replaces the descriptor's action().
- every other attribute is a flag, a positional, an inline block or skipped,
  according to its tag.

Side effects on the instance (and its children)
- the Command attribute is replaced by a handle placed at the node's paths.
- unbound fields are zero-filled, inline blocks and subcommand children are
  allocated so the tree holds live references.
"""
import inspect
import logging
import types
import typing

from .faults import *
from .registry import lookup, optional, variants
from .router import ROOT, Command, RunFunc
from .tags import Tag, parse_tag
from .utils import Unset, coalesce

logger = logging.getLogger(__name__)

# instances of these are values, not descriptors
_IMMUTABLES = (bool, int, float, complex, str, bytes, tuple, frozenset, range)

SUBCOMMANDS = "subcommands"
RUN = "run"


class FieldMeta:
    """
    Everything the assembler and the binder need to know about one field.

    Attributes
    - field: declared attribute name.
    - name: public kebab-case name (inline prefixes included).
    - aliases, envs, usage, hidden, positional, required, short_opt, default.
    - path: attribute names from the descriptor to the field (inline hops first).
    - hops: annotations of the inline hops along path (len(path) - 1 items).
    - type: the field annotation.
    - entry: the registry entry handling type.
    - on_unset: fallback callable taking the Context, or None.
    """
    __slots__ = (
        "field",
        "name",
        "aliases",
        "envs",
        "usage",
        "hidden",
        "positional",
        "inline",
        "required",
        "short_opt",
        "default",
        "path",
        "hops",
        "type",
        "entry",
        "on_unset",
    )

    def __init__(self, **attributes):
        for name in self.__slots__:
            setattr(self, name, attributes.pop(name, None))
        if attributes:
            raise TypeError(f"unexpected field-meta attributes: {', '.join(attributes)}")

    @property
    def variadic(self):
        return self.entry.variadic

    @property
    def metavar(self):
        return self.name.replace("-", "_").upper()

    def __repr__(self):
        return f"field-meta({self.name!r}, type={self.type!r}, positional={self.positional!r})"


class CommandNode:
    """
    One command of the tree, as produced by walk().
    """
    __slots__ = (
        "name",
        "usage",
        "description",
        "aliases",
        "hidden",
        "flags",
        "positionals",
        "short_options",
        "parent_path",
        "current_path",
        "run",
        "children",
        "instance",
        "handle",
        "declared",
    )

    def __init__(self, name, instance, /, parent_path, current_path):
        self.name = name
        self.instance = instance
        self.parent_path = parent_path
        self.current_path = current_path
        self.usage = None
        self.description = None
        self.aliases = ()
        self.hidden = False
        self.short_options = False
        self.flags = []
        self.positionals = []
        self.run = None
        self.children = []
        self.declared = []
        self.handle = None

    def __repr__(self):
        return f"command-node({self.current_path!r}, flags={len(self.flags)}, positionals={len(self.positionals)}, children={len(self.children)})"


def fields(cls, /):
    """
    Annotated attributes of a class in declaration order (bases first).

    ClassVar annotations and private names are ignored.
    """
    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError) as error:
        raise UnsupportedTypeError(f"cannot resolve annotations of {cls!r}: {error}", type=cls) from error
    return [
        (name, annotation) for name, annotation in hints.items()
        if not name.startswith("_") and typing.get_origin(annotation) is not typing.ClassVar
    ]


def is_descriptor(cls, /):
    """
    Whether cls is a descriptor class (first annotated attribute typed Command).
    """
    return isinstance(cls, type) and bool(hints := fields(cls)) and hints[0][1] is Command


def _marker(cls, name):
    marker = inspect.getattr_static(cls, name, None)
    return marker.text if isinstance(marker, Tag) else ""


def _unbound(owner, name):
    value = getattr(owner, name, Unset)
    return value is Unset or isinstance(value, Tag)


def allocate(record, /):
    """
    Instantiate an inline record and zero-fill its fields.
    """
    instance = record()
    _zero_fill(instance, record)
    return instance


def _zero_fill(instance, record):
    for name, annotation in fields(record):
        spec = parse_tag(_marker(record, name))
        if spec.skip or not _unbound(instance, name):
            continue
        if spec.inline:
            setattr(instance, name, None if optional(annotation) is not Unset else allocate(annotation))
        else:
            setattr(instance, name, lookup(annotation).zero(annotation))


def _usage(usage, annotation):
    if (accepted := variants(annotation)) is None:
        return usage
    suffix = f"possible values: [{', '.join(accepted)}]"
    return f"{usage}, {suffix}" if usage else suffix


def _fallback(instance, path):
    """
    Discover on_<path>_unset on the descriptor and adapt it to take the Context.

    Accepted shapes are on_x_unset() and on_x_unset(ctx); any other shape
    yields a callable that raises MethodNotFoundError when invoked.
    """
    method = "on_%s_unset" % "_".join(path)
    if (function := getattr(instance, method, None)) is None:
        return None

    def missing(ctx):
        raise MethodNotFoundError(
            f"{type(instance).__name__}.{method} must take no arguments or the context",
            method=method,
            title="method not found",
            code=FaultCode.METHOD_NOT_FOUND,
            hint=f"define {method}(self) or {method}(self, ctx)",
        )

    if not callable(function):
        return missing
    try:
        parameters = inspect.signature(function).parameters.values()
    except (TypeError, ValueError):
        return missing
    if any(parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD) for parameter in parameters):
        return missing
    match len(parameters):
        case 0:
            return lambda ctx: function()
        case 1:
            return function
        case _:
            return missing


def _run_hook(instance, cls):
    hook = inspect.getattr_static(instance, RUN, None)
    if isinstance(hook, staticmethod):
        return hook.__func__
    if hook is None or isinstance(hook, Tag):
        return None
    if not callable(hook):
        raise TypeError(f"{cls.__name__}.{RUN} must be callable")
    # a plain function found on the class would be called without self
    if isinstance(hook, types.FunctionType) and RUN not in getattr(instance, "__dict__", {}):
        raise TypeError(
            f"{cls.__name__}.{RUN} is a method; assign a function to the instance or use @staticmethod",
        )
    return hook


def _check(instance):
    if instance is None:
        raise NilDescriptorError("descriptor cannot be None")
    if isinstance(instance, type):
        raise PassedByValueError(
            f"descriptor {instance.__name__} must be passed as an instance, not the class",
            descriptor=instance,
        )
    if isinstance(instance, _IMMUTABLES):
        raise PassedByValueError(
            f"descriptor must be a mutable instance, got {type(instance).__name__}",
            descriptor=type(instance),
        )


def walk(instance, /, parent_path=ROOT, parent_current="", env_prefix=Unset):
    """
    Build the CommandNode for a descriptor instance (and its subcommands).

    Parameters
    - instance: descriptor instance (mutated, see module docstring).
    - parent_path: store key of the parent command (ROOT for top-level commands).
    - parent_current: path prefix for this command's own key ("" at the top).
    - env_prefix: prefix joined with '_' to every derived environment variable.

    Raises
    - NilDescriptorError, PassedByValueError, WrongFirstFieldError
    - UnsupportedTypeError, SubcommandByValueError, DoublePointerSubcommandError
    - TagError subclasses for malformed tags
    """
    _check(instance)
    cls = type(instance)
    hints = fields(cls)
    if not hints or hints[0][1] is not Command:
        field, annotation = hints[0] if hints else (None, None)
        raise WrongFirstFieldError(
            f"descriptor {cls.__name__} must declare a Command as its first field"
            + (f", got {field}: {annotation!r}" if hints else ""),
            num_fields=len(hints),
            field=field,
            type=annotation,
            descriptor=cls,
        )

    attribute = hints[0][0]
    marker = inspect.getattr_static(cls, attribute, None)
    marker = marker if isinstance(marker, Command) else Command()
    spec = parse_tag(marker.tag.text)

    name = coalesce(spec.name, cls.__name__.lower())
    node = CommandNode(name, instance, parent_path=parent_path, current_path=f"{parent_current}/{name}")
    node.usage = coalesce(spec.usage)
    node.aliases = spec.aliases
    node.hidden = spec.hidden
    node.short_options = bool(coalesce(spec.short_opt, False))
    if callable(description := getattr(instance, "description", None)):
        node.description = description()
    node.handle = marker.placed(parent_path, node.current_path)
    setattr(instance, attribute, node.handle)

    for field, annotation in hints[1:]:
        if field == SUBCOMMANDS:
            node.children.extend(_expand(instance, annotation, node.current_path, env_prefix))
        elif field == RUN and (annotation is RunFunc or typing.get_origin(annotation) is typing.get_origin(RunFunc.__value__)):
            node.run = _run_hook(instance, cls)
        else:
            _collect(node, instance, instance, cls, field, annotation, (), (), (), env_prefix)

    logger.debug(
        "walked %s at %r: %d flags, %d positionals, %d children",
        cls.__name__, node.current_path, len(node.flags), len(node.positionals), len(node.children),
    )
    return node


def _collect(node, instance, owner, cls, field, annotation, prefix, path, hops, env_prefix):
    spec = parse_tag(_marker(cls, field))
    if spec.skip:
        return

    if spec.inline:
        inner = optional(annotation)
        record = annotation if inner is Unset else inner
        if not isinstance(record, type) or is_descriptor(record):
            raise UnsupportedTypeError(f"inline field {field!r} must be annotated with a plain class", type=annotation)
        if owner is not None and _unbound(owner, field):
            setattr(owner, field, None if inner is not Unset else allocate(record))
        nested = getattr(owner, field, None) if owner is not None else None
        for name, subannotation in fields(record):
            _collect(
                node, instance, nested, record, name, subannotation,
                (*prefix, field), (*path, field), (*hops, annotation), env_prefix,
            )
        return

    entry = lookup(annotation)
    name, envs, required = spec.resolve(field, prefix, env_prefix)
    meta = FieldMeta(
        field=field,
        name=name,
        aliases=spec.aliases,
        envs=envs,
        usage=_usage(spec.usage, annotation),
        hidden=spec.hidden,
        positional=spec.positional,
        inline=False,
        required=required,
        short_opt=bool(coalesce(spec.short_opt, node.short_options)),
        default=spec.default,
        path=(*path, field),
        hops=hops,
        type=annotation,
        entry=entry,
        on_unset=_fallback(instance, (*path, field)),
    )
    if owner is not None and _unbound(owner, field):
        setattr(owner, field, entry.zero(annotation))

    (node.positionals if meta.positional else node.flags).append(meta)
    node.declared.append(meta)


def _expand(instance, group, current_path, env_prefix):
    """
    Walk the subcommand group of a descriptor into child nodes.
    """
    if not isinstance(group, type) or is_descriptor(group):
        raise SubcommandByValueError(
            f"{type(instance).__name__}.{SUBCOMMANDS} must be annotated with a group class",
            field=SUBCOMMANDS,
            type=group,
        )
    if _unbound(instance, SUBCOMMANDS):
        setattr(instance, SUBCOMMANDS, group())
    return _children(getattr(instance, SUBCOMMANDS), group, current_path, env_prefix)


def _children(holder, group, current_path, env_prefix):
    children = []
    for field, annotation in fields(group):
        if (inner := optional(annotation)) is not Unset:
            if not is_descriptor(inner):
                if isinstance(inner, type):
                    raise DoublePointerSubcommandError(
                        f"subcommand {group.__name__}.{field} cannot be an optional group",
                        field=field,
                        type=annotation,
                    )
                raise UnsupportedTypeError(f"subcommand {group.__name__}.{field} has unsupported type {annotation!r}", type=annotation)
            if _unbound(holder, field) or getattr(holder, field) is None:
                setattr(holder, field, inner())
            children.append(walk(getattr(holder, field), current_path, current_path, env_prefix))
        elif is_descriptor(annotation):
            raise SubcommandByValueError(
                f"subcommand {group.__name__}.{field} must be Optional[{annotation.__name__}]",
                field=field,
                type=annotation,
            )
        elif isinstance(annotation, type):
            # anonymous group: its children become siblings
            if _unbound(holder, field):
                setattr(holder, field, annotation())
            children.extend(_children(getattr(holder, field), annotation, current_path, env_prefix))
        else:
            raise UnsupportedTypeError(f"subcommand {group.__name__}.{field} has unsupported type {annotation!r}", type=annotation)
    return children


__all__ = (
    "FieldMeta",
    "CommandNode",
    "SUBCOMMANDS",
    "RUN",
    "fields",
    "is_descriptor",
    "allocate",
    "walk",
)
