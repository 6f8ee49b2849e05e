"""
clive: bind annotated descriptor classes to a command line.

    class Serve:
        command: Command = Command("usage:'serve the api'")
        port: int = tag("default:8080,alias:p")

        def action(self, ctx):
            ...

    build(Serve()).main()
"""
__path__ = __import__("pkgutil").extend_path(__path__, __name__)  # NOQA: F-821
__title__ = "clive"
__author__ = "clive contributors"
__license__ = "MIT"
__version__ = "0.0.0"

from .assembler import *
from .commands import *
from .faults import *
from .flags import *
from .registry import Int64, Uint, Uint64, Float32, Float64, Duration, Counter
from .router import *
from .tags import tag

VersionInfo = __import__("collections").namedtuple("VersionInfo", ("major", "minor", "micro"))

version_info = VersionInfo(*map(int, __version__.split(".")))

__all__ = (
    "__title__",
    "__author__",
    "__license__",
    "__version__",
    "version_info",
    "tag",
    "Int64",
    "Uint",
    "Uint64",
    "Float32",
    "Float64",
    "Duration",
    "Counter",
)

__all__ += assembler.__all__  # type: ignore[attr-defined]
__all__ += commands.__all__  # type: ignore[attr-defined]
__all__ += faults.__all__  # type: ignore[attr-defined]
__all__ += flags.__all__  # type: ignore[attr-defined]
__all__ += router.__all__  # type: ignore[attr-defined]
