"""
Clive field tags.

A tag is the annotation string attached to a descriptor field through a
class-level default:

    class Serve:
        command: Command = Command("usage:'serve the api',shortOpt")
        address: str = tag("name:api_address,alias:'a,i',default:'0.0.0.0'")
        files: list[str] = tag("positional,required:false")

Grammar
- sections are separated by commas; commas inside single quotes are literal.
- bare tokens: '-' (skip the field), 'positional', 'inline', 'required',
  'shortOpt', 'entrypoint'.
- key/value pairs ('key:value', value optionally single-quoted):
  name, usage, required:bool, env:list, alias:list, hidden:bool,
  default:str, shortOpt:bool, entrypoint (accepted, no effect).
- booleans use the Go spelling set: 1 t T TRUE true True 0 f F FALSE false False.

Errors
- InvalidTagError: malformed section or invalid value.
- UnknownTagKeyError: unrecognized key or bare token.
- InvalidBooleanError: a boolean key whose value is not a boolean literal.
"""
import functools

from .faults import InvalidTagError, UnknownTagKeyError, InvalidBooleanError
from .utils import Unset, coalesce, kebab, screaming_snake

_TRUTHS = frozenset(("1", "t", "T", "TRUE", "true", "True"))
_FALSITIES = frozenset(("0", "f", "F", "FALSE", "false", "False"))


def parse_bool(text, /):
    """
    Parse a boolean literal the way Go's strconv.ParseBool does.

    Raises ValueError for anything outside the accepted spellings.
    """
    if text in _TRUTHS:
        return True
    if text in _FALSITIES:
        return False
    raise ValueError(f"invalid boolean literal {text!r}")


class Tag:
    """
    Hashable marker carrying the raw tag text of a descriptor field.

    Used as the class-level default of annotated descriptor attributes; the
    walker reads it back and replaces it on the instance with the field's
    zero value.
    """
    __slots__ = ("_text",)

    def __init__(self, text="", /):
        if not isinstance(text, str):
            raise TypeError("tag text must be a string")
        self._text = text

    @property
    def text(self):
        return self._text

    def __eq__(self, other):
        if not isinstance(other, Tag):
            return NotImplemented
        return self._text == other._text

    def __hash__(self):
        return hash((Tag, self._text))

    def __repr__(self):
        return f"tag({self._text!r})"


def tag(text="", /):
    """
    Build the tag marker for a descriptor field (see module docstring).
    """
    return Tag(text)


class TagSpec:
    """
    Structured form of a parsed tag.

    Attributes keep Unset when the tag did not mention them, so the walker can
    tell "not declared" apart from an explicit value (e.g. required:false).
    """
    __slots__ = (
        "skip",
        "positional",
        "inline",
        "entrypoint",
        "name",
        "usage",
        "required",
        "hidden",
        "short_opt",
        "envs",
        "aliases",
        "default",
    )

    def __init__(self):
        self.skip = False
        self.positional = False
        self.inline = False
        self.entrypoint = False
        self.name = Unset
        self.usage = Unset
        self.required = Unset
        self.hidden = False
        self.short_opt = Unset
        self.envs = Unset
        self.aliases = ()
        self.default = Unset

    def __repr__(self):
        return "tag-spec(%s)" % ", ".join(
            f"{name}={getattr(self, name)!r}" for name in self.__slots__
        )

    def resolve(self, field, /, prefix=(), env_prefix=Unset):
        """
        Apply the defaulting rules and return (name, envs, required).

        - name: kebab-case of the inline prefix chain joined with the tag name
          (or the declared attribute name when the tag has none).
        - envs: the declared env list, otherwise SCREAMING_SNAKE of the name,
          prefixed with "<env_prefix>_" when a prefix is configured.
        - required: the declared value; a positional with no declaration is
          required iff it has no default; flags are optional by default.
        """
        name = kebab("-".join((*prefix, coalesce(self.name, field))))

        if self.envs is Unset:
            env = screaming_snake(name)
            if env_prefix:
                env = f"{env_prefix}_{env}"
            envs = (env,)
        else:
            envs = self.envs

        if self.required is not Unset:
            required = self.required
        elif self.positional:
            required = self.default is Unset
        else:
            required = False

        return name, envs, required


def _split(text):
    """
    Split tag text into sections on commas that are not inside single quotes.
    """
    sections = []
    buffer = []
    quoted = False
    for char in text:
        if char == "'":
            quoted = not quoted
        elif char == "," and not quoted:
            sections.append("".join(buffer))
            buffer.clear()
            continue
        buffer.append(char)
    sections.append("".join(buffer))
    return [section.strip() for section in sections if section.strip()]


def _unquote(value):
    return value.strip().strip("'")


def _boolean(key, value, text):
    try:
        return parse_bool(_unquote(value))
    except ValueError:
        raise InvalidBooleanError(
            f"tag key {key!r} expects a boolean, got {value!r} in {text!r}", key=key, value=value, tag=text
        ) from None


def _listing(value):
    return tuple(item.strip() for item in _unquote(value).split(",") if item.strip())


@functools.cache
def parse_tag(text, /):
    """
    Parse tag text into a TagSpec.

    Parameters
    - text: str
      Raw annotation text (see module docstring for the grammar).

    Returns
    - TagSpec

    Raises
    - InvalidTagError, UnknownTagKeyError, InvalidBooleanError
    """
    if not isinstance(text, str):
        raise TypeError("parse_tag() argument must be a string")

    spec = TagSpec()
    for section in _split(text):
        key, separator, value = section.partition(":")
        key = key.strip()

        if not separator:
            match key:
                case "-":
                    spec.skip = True
                case "positional":
                    spec.positional = True
                case "inline":
                    spec.inline = True
                case "required":
                    spec.required = True
                case "shortOpt":
                    spec.short_opt = True
                case "entrypoint":
                    spec.entrypoint = True
                case "name" | "usage" | "env" | "alias" | "default" | "hidden":
                    raise InvalidTagError(f"tag key {key!r} requires a value in {text!r}", key=key, tag=text)
                case _:
                    raise UnknownTagKeyError(f"unknown tag key {key!r} in {text!r}", key=key, tag=text)
            continue

        if not key:
            raise InvalidTagError(f"malformed tag section {section!r} in {text!r}", section=section, tag=text)

        match key:
            case "name":
                if not (name := _unquote(value)):
                    raise InvalidTagError(f"tag key 'name' cannot be empty in {text!r}", key=key, tag=text)
                spec.name = name
            case "usage":
                spec.usage = _unquote(value)
            case "required":
                spec.required = _boolean(key, value, text)
            case "hidden":
                spec.hidden = _boolean(key, value, text)
            case "shortOpt":
                spec.short_opt = _boolean(key, value, text)
            case "env":
                spec.envs = _listing(value)
            case "alias":
                spec.aliases = _listing(value)
            case "default":
                spec.default = _unquote(value)
            case "entrypoint":
                spec.entrypoint = True
            case _:
                raise UnknownTagKeyError(f"unknown tag key {key!r} in {text!r}", key=key, tag=text)

    return spec


__all__ = (
    "Tag",
    "TagSpec",
    "tag",
    "parse_tag",
    "parse_bool",
)
