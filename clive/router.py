"""
Clive context router.

Every descriptor declares a Command as its first annotated attribute:

    class Serve:
        command: Command = Command("usage:'serve the api'")
        port: int = tag("default:8080")

On the class, the Command is a marker carrying the command-level tag. While
building, the walker installs a fresh Command on each descriptor instance that
also knows the instance's place in the tree (parent and current path keys).
Inside hooks, that handle retrieves bound descriptors from the running
application's metadata store:

    def action(self, ctx):
        app = self.command.root(ctx)
        parent = self.command.parent(ctx)

Store layout
- ROOT ("cliveRoot") → the root descriptor (single-descriptor applications only).
- "/<root>/<child>/..." → the descriptor of each command in the tree.
"""
from collections.abc import Callable

from .faults import NoRootError, NoParentError, NoCurrentError
from .tags import Tag
from .utils import Unset

ROOT = "cliveRoot"


class Command:
    """
    Command marker (on the class) and context handle (on the instance).

    Attributes
    - tag: Tag with the command-level annotation (name, usage, alias, shortOpt).
    - parent_path: store key of the parent command (ROOT for top-level commands).
    - current_path: store key of this command; Unset until the walker places it.
    """
    __slots__ = ("_tag", "_parent_path", "_current_path")

    def __init__(self, text="", /, *, parent_path=Unset, current_path=Unset):
        self._tag = text if isinstance(text, Tag) else Tag(text)
        self._parent_path = parent_path
        self._current_path = current_path

    @property
    def tag(self):
        return self._tag

    @property
    def parent_path(self):
        return self._parent_path

    @property
    def current_path(self):
        return self._current_path

    def __repr__(self):
        if self._current_path is Unset:
            return f"Command({self._tag.text!r})"
        return f"Command({self._tag.text!r}, current_path={self._current_path!r})"

    def placed(self, parent_path, current_path, /):
        """
        A handle with the same tag, placed at the given paths.
        """
        return Command(self._tag, parent_path=parent_path, current_path=current_path)

    def root(self, ctx, /):
        """
        The root descriptor of the running application.

        Raises NoRootError when the application was built from several
        top-level descriptors (there is no single root).
        """
        try:
            return ctx.application.metadata[ROOT]
        except KeyError:
            raise NoRootError("no root descriptor registered", path=ROOT) from None

    def parent(self, ctx, /):
        """
        The descriptor of the command this one is nested under.
        """
        try:
            return ctx.application.metadata[self._parent_path]
        except KeyError:
            raise NoParentError(f"no parent descriptor at {self._parent_path!r}", path=self._parent_path) from None

    def current(self, ctx, /):
        """
        This command's own bound descriptor.
        """
        try:
            return ctx.application.metadata[self._current_path]
        except KeyError:
            raise NoCurrentError(f"no descriptor at {self._current_path!r}", path=self._current_path) from None


type RunFunc = Callable[[Command, object], None]
"""
Signature of a descriptor's `run` field: called with the command handle and
the Context instead of the descriptor's action().
"""


__all__ = (
    "ROOT",
    "Command",
    "RunFunc",
)
