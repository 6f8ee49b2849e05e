"""
Clive command tree assembler and public build API.

    app = clive.build(Serve())
    app.main()

build() walks descriptors into CommandNodes, validates them, and turns each
node into a commands.Program whose hooks bind and dispatch:

- before: bind the descriptor's fields (help on stderr on failure), store the
  bound instance under its path, then call the descriptor's before(ctx).
- action: the 'run' field when set, else the descriptor's action(ctx); group
  commands without either show their help.
- after: the descriptor's after(ctx), on every return path.

One descriptor builds an Application that is that command. Several
descriptors build an Application named after the running program that hosts
them as commands.
"""
import logging
from collections import namedtuple

from .binder import bind
from .commands import Program, Application
from .faults import *
from .router import ROOT
from .utils import Unset
from .walker import walk

logger = logging.getLogger(__name__)

Options = namedtuple("Options", ("env_prefix",), defaults=(Unset,))
Options.__doc__ = """
Build options.

- env_prefix: prepended with '_' to every derived environment variable name
  (Options(env_prefix="APP") turns PORT into APP_PORT).
"""


def args_usage(positionals, /):
    """
    Render the positional usage string: NAME, [NAME], NAME [NAME], [NAME [NAME]].
    """
    parts = []
    for meta in positionals:
        part = meta.metavar
        if meta.variadic:
            part = f"{part} [{part}]"
        parts.append(part if meta.required else f"[{part}]")
    return " ".join(parts)


def validate(node, /):
    """
    Check the positional layout of a command.

    Raises
    - HiddenPositionalError: a positional marked hidden.
    - PositionalAfterVariadicError: anything declared after a list positional.
    - OptionalBeforeRequiredError: a required positional after an optional one.
    """
    optional = variadic = None
    for meta in node.positionals:
        if meta.hidden:
            raise HiddenPositionalError(
                f"positional {meta.name!r} of {node.current_path!r} cannot be hidden",
                field=meta.name,
                command=node.current_path,
            )
        if variadic is not None:
            raise PositionalAfterVariadicError(
                f"positional {meta.name!r} of {node.current_path!r} follows variadic {variadic.name!r}",
                current=meta.name,
                first=variadic.name,
                command=node.current_path,
            )
        if meta.required and optional is not None:
            raise OptionalBeforeRequiredError(
                f"required positional {meta.name!r} of {node.current_path!r} follows optional {optional.name!r}",
                field=meta.name,
                optional=optional.name,
                command=node.current_path,
            )
        if not meta.required:
            optional = meta
        if meta.variadic:
            variadic = meta


def _flags(node):
    flags = []
    for meta in node.declared:
        try:
            if meta.positional:
                meta.entry.default(meta)
            else:
                flags.append(meta.entry.new_flag(meta))
        except ValueError as error:
            raise InvalidTagError(
                f"invalid default {meta.default!r} for {meta.name!r} of {node.current_path!r}: {error}",
                key="default",
                field=meta.name,
                tag=meta.default,
            ) from error
    return flags


def _hooks(node):
    instance = node.instance

    def before(ctx):
        try:
            bind(node, instance, ctx)
        except BindError:
            ctx.program.show_help(stderr=True)
            raise
        ctx.application.metadata[node.current_path] = instance
        if node.parent_path == ROOT and ctx.parent is None:
            ctx.application.metadata.setdefault(ROOT, instance)
        logger.debug("bound %s at %r", type(instance).__name__, node.current_path)
        if callable(hook := getattr(instance, "before", None)):
            hook(ctx)

    def action(ctx):
        if node.run is not None:
            return node.run(node.handle, ctx)
        if callable(hook := getattr(instance, "action", None)):
            return hook(ctx)
        return ctx.program.show_help()

    def after(ctx):
        if callable(hook := getattr(instance, "after", None)):
            hook(ctx)

    return before, action, after


def _program(node, cls=Program, /, **options):
    validate(node)
    if node.run is None and not node.children and not callable(getattr(node.instance, "action", None)):
        raise MissingActionError(
            f"descriptor {type(node.instance).__name__} at {node.current_path!r} needs an action() method or a run field",
            descriptor=type(node.instance),
            command=node.current_path,
        )

    before, action, after = _hooks(node)
    program = cls(
        node.name,
        usage=node.usage or Unset,
        description=node.description or Unset,
        aliases=node.aliases,
        flags=_flags(node),
        args_usage=args_usage(node.positionals) or Unset,
        short_options=node.short_options,
        hidden=node.hidden,
        before=before,
        action=action,
        after=after,
        children=[_program(child) for child in node.children],
        **options,
    )
    logger.debug("assembled %r with %d flags", node.current_path, len(program.flags))
    return program


def _store(node, metadata):
    metadata[node.current_path] = node.instance
    for child in node.children:
        _store(child, metadata)


def _build(descriptors, options):
    if not descriptors:
        raise TypeError("build() requires at least one descriptor")
    if not isinstance(options, Options):
        raise TypeError("build options must be an Options instance")

    nodes = [walk(descriptor, env_prefix=options.env_prefix) for descriptor in descriptors]
    if len(nodes) == 1:
        node, = nodes
        version = getattr(node.instance, "version", None)
        application = _program(node, Application, version=version() if callable(version) else Unset)
        application.metadata[ROOT] = node.instance
    else:
        application = Application(children=[_program(node) for node in nodes])

    for node in nodes:
        _store(node, application.metadata)
    return application


def build(*descriptors):
    """
    Build an Application from one or more descriptor instances.

    Raises
    - ConfigError subclasses for structural and tag problems.
    """
    return _build(descriptors, Options())


def build_custom(descriptor, options, /):
    """
    Build an Application from a single descriptor with build Options.
    """
    return _build((descriptor,), options)


def build_subcommands(*descriptors, options=Options()):
    """
    Build detached Programs, for attaching to an Application built by hand:

        app = Application("tool", children=build_subcommands(Start(), Stop()))

    Descriptors register in the application's store when their before hook runs.
    """
    return tuple(_program(walk(descriptor, env_prefix=options.env_prefix)) for descriptor in descriptors)


def extract(descriptor, ctx, /, options=Options()):
    """
    Bind a fresh instance of a descriptor's class from a parse context.

    Parameters
    - descriptor: descriptor class or instance (only its class is used).
    - ctx: Context of a program built from the same descriptor class.

    Returns the bound instance.
    """
    cls = descriptor if isinstance(descriptor, type) else type(descriptor)
    instance = cls()
    node = walk(instance, env_prefix=options.env_prefix)
    bind(node, instance, ctx)
    return instance


__all__ = (
    "Options",
    "args_usage",
    "validate",
    "build",
    "build_custom",
    "build_subcommands",
    "extract",
)
