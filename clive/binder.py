"""
Clive value binder.

Moves parsed values into a descriptor instance, field by field, in
declaration order. Runs inside the before hook of the invoked command.

Positionals
- consumed from the context's positional tokens in declaration order.
- a list positional consumes every remaining token.
- when tokens run out: required ⇒ MissingPositionalError; otherwise the
  declared default is applied, else the on_<field>_unset fallback is called.
- tokens left after the last positional ⇒ TooManyArgumentsError.

Flags
- set on the command line or through the environment, or declaring a
  default ⇒ read from the context; otherwise the fallback is called.

Conversion failures are wrapped in FieldAssignError naming the field, its
type and the source of the value; the original error is the __cause__.
"""
import contextlib
import logging
import typing

from .faults import *
from .registry import Slot, optional
from .tags import Tag
from .utils import Unset
from .walker import allocate

logger = logging.getLogger(__name__)


def _typename(tp):
    if typing.get_args(tp) or not hasattr(tp, "__name__"):
        return repr(tp)
    return tp.__name__


def slot(instance, meta, /):
    """
    The writable slot of a field, allocating Optional inline hops on the way.
    """
    owner = instance
    for attribute, hop in zip(meta.path[:-1], meta.hops):
        nested = getattr(owner, attribute, None)
        if nested is None or isinstance(nested, Tag):
            inner = optional(hop)
            nested = allocate(hop if inner is Unset else inner)
            setattr(owner, attribute, nested)
        owner = nested
    return Slot(owner, meta.path[-1], meta.type)


@contextlib.contextmanager
def _assigning(meta, source):
    try:
        yield
    except (ValueError, ArithmeticError) as error:
        raise FieldAssignError(
            f"cannot assign {source} to field {'.'.join(meta.path)!r} of type {_typename(meta.type)}: {error}",
            field=".".join(meta.path),
            type=meta.type,
            source=source,
            title="invalid value",
            code=FaultCode.FIELD_ASSIGN,
            hint=f"check the value given for {source}",
        ) from error


def _fallback(meta, ctx, source):
    if meta.on_unset is None:
        return
    logger.debug("calling unset fallback for %r", meta.name)
    with _assigning(meta, f"fallback of {source}"):
        meta.on_unset(ctx)


def bind(node, instance, ctx, /):
    """
    Bind every field of node into instance from ctx.

    Parameters
    - node: CommandNode produced by walk().
    - instance: the descriptor instance to populate.
    - ctx: the commands.Context of the invoked program.

    Raises
    - MissingPositionalError, TooManyArgumentsError, MethodNotFoundError
    - FieldAssignError (wrapping the conversion error)
    """
    tokens = list(ctx.args)
    positionals = False

    for meta in node.declared:
        if meta.positional:
            positionals = True
            source = f"positional argument {meta.metavar}"

            if not tokens:
                if meta.required:
                    raise MissingPositionalError(
                        f"missing required positional argument {meta.metavar}",
                        positional=meta.name,
                        title="missing positional argument",
                        code=FaultCode.MISSING_POSITIONAL,
                        hint=f"pass a value for {meta.metavar}",
                    )
                if meta.default is not Unset:
                    with _assigning(meta, f"default of {source}"):
                        meta.entry.from_string(slot(instance, meta), meta.default)
                else:
                    _fallback(meta, ctx, source)
                continue

            if meta.variadic:
                items, tokens = tokens, []
                logger.debug("binding %r from %d tokens", meta.name, len(items))
                with _assigning(meta, source):
                    meta.entry.from_strings(slot(instance, meta), items)
            else:
                token = tokens.pop(0)
                logger.debug("binding %r from token %r", meta.name, token)
                with _assigning(meta, f"{source} ({token!r})"):
                    meta.entry.from_string(slot(instance, meta), token)
            continue

        source = f"flag --{meta.name}"
        if ctx.is_set(meta.name) or meta.default is not Unset:
            logger.debug("binding %r from the context", meta.name)
            with _assigning(meta, source):
                meta.entry.from_context(slot(instance, meta), meta.name, ctx)
        else:
            _fallback(meta, ctx, source)

    if positionals and tokens:
        raise TooManyArgumentsError(
            f"too many arguments: {' '.join(tokens)}",
            remaining=tuple(tokens),
            title="too many arguments",
            code=FaultCode.TOO_MANY_ARGUMENTS,
            hint="remove the extra arguments or quote values that contain spaces",
        )


__all__ = (
    "slot",
    "bind",
)
