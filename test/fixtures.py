"""
Shared descriptors for the behavioral tests.

Conventions
- Descriptors live at module level so their annotations resolve.
- Every test instantiates its own descriptor: building mutates instances.
- Action hooks record what they saw on the instance (invoked, seen).
"""

import enum
import json
from datetime import timedelta
from typing import Optional

from clive import Command, Counter, Int64, Uint, Uint64, Float32, RunFunc, tag


class Color(enum.Enum):
    RED = "Red"
    GREEN = "Green"
    BLUE = "Blue"


class Role(enum.Enum):
    SERVER = "server"
    CLIENT = "client"


class Json:
    def __init__(self, value=None):
        self.value = value

    @classmethod
    def from_text(cls, text):
        return cls(json.loads(text))

    def __eq__(self, other):
        return isinstance(other, Json) and self.value == other.value

    def __repr__(self):
        return f"Json({self.value!r})"


class Recorder:
    invoked = False

    def action(self, ctx):
        self.invoked = True


class Greeting(Recorder):
    command: Command = Command()
    one: str = tag("default:hello")
    two: str = tag("default:there")
    three: str = tag("name:api_address,default:'1.2.3.4'")


class Everything(Recorder):
    command: Command = Command("name:everything")
    integer: int = tag("default:-5")
    int64: Int64 = tag("default:9223372036854775807")
    uint: Uint = tag("default:7")
    uint64: Uint64 = tag("default:18446744073709551615")
    float32: Float32 = tag("default:4.5")
    float64: float = tag("default:2.25")
    enabled: bool = tag("default:true")
    text: str = tag("default:hello")
    timeout: timedelta = tag("default:1h5m10s")
    color: Color = tag("default:Green")
    integers: list[int] = tag("default:'9,8,7'")
    int64s: list[Int64] = tag("default:'9,8,7'")
    uints: list[Uint] = tag("default:'9,8,7'")
    uint64s: list[Uint64] = tag("default:'9,8,7'")
    float32s: list[Float32] = tag("default:'1.5,2.5'")
    float64s: list[float] = tag("default:'1.5,2.5'")
    texts: list[str] = tag("default:'a,b'")
    timeouts: list[timedelta] = tag("default:'1s,2m'")
    colors: list[Color] = tag("default:'Red,Blue'")


class Zeroes(Recorder):
    command: Command = Command()
    integer: int = tag()
    text: str = tag()
    enabled: bool = tag()
    timeout: timedelta = tag()
    integers: list[int] = tag()
    color: Color = tag()
    counter: Counter = tag()
    maybe: Optional[int] = tag()
    maybes: Optional[list[str]] = tag()


class Quiet(Recorder):
    command: Command = Command("shortOpt")
    silent: Counter = tag("alias:s")


class Loud(Recorder):
    command: Command = Command()
    silent: Counter = tag("alias:s")


class Chatty(Recorder):
    command: Command = Command()
    verbose: Counter = tag("alias:v,shortOpt")
    silent: Counter = tag("alias:s")


class Start(Recorder):
    command: Command = Command("usage:'start service'")
    service: list[str] = tag("positional,required:false,usage:'services to use'")


class Stop(Recorder):
    command: Command = Command("usage:'stop service'")
    service: list[str] = tag("positional,required:false,usage:'services to use'")


class SetOption(Recorder):
    command: Command = Command("usage:'configure system'")
    name: str = tag("positional")
    value: Json = tag("positional")


class ConfigCommands:
    setoption: Optional[SetOption]


class Config:
    command: Command = Command("usage:'configuration'")
    subcommands: ConfigCommands


class Lifecycle:
    start: Optional[Start]
    stop: Optional[Stop]


class Services:
    lifecycle: Lifecycle
    config: Optional[Config]


class Service:
    command: Command = Command()
    subcommands: Services

    def version(self):
        return "1.2.3"


class ComposedOption:
    role: Role = tag()
    port: int = tag()


class Composed(Recorder):
    command: Command = Command()
    input: ComposedOption = tag("inline")
    output: ComposedOption = tag("inline")


class MaybeComposed(Recorder):
    command: Command = Command()
    input: Optional[ComposedOption] = tag("inline")


class Copy(Recorder):
    command: Command = Command()
    source: str = tag("positional")
    targets: list[str] = tag("positional,required:false")


def launch(handle, ctx):
    handle.current(ctx).launched = True


class Launcher:
    command: Command = Command()
    run: RunFunc
    target: str = tag("positional,required:false")

    def __init__(self):
        self.run = launch
        self.launched = False
