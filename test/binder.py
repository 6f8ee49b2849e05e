"""
Value binder tests, driven through build() and Application.run().

Scope
- Validate the seed scenarios: defaults, every scalar type, counters,
  nested subcommands with text types, inline blocks, positionals.
- Validate positional accounting and fallbacks.
- Validate environment sources, list accumulation and pointer allocation.
- Validate wrapped assignment failures.

Conventions
- Test method names follow CamelCase per project convention.
- argv lists start with the program name, as sys.argv does.
- Help printed on binding failures is captured through redirect_stderr.
"""

import io
import os
import struct
import unittest
from contextlib import redirect_stderr
from datetime import timedelta
from typing import Optional
from unittest import TestCase, mock

from clive import Command, Counter, Options, build, build_custom, tag
from clive.faults import (
    MissingPositionalError,
    TooManyArgumentsError,
    MethodNotFoundError,
    FieldAssignError,
    BindError,
)

from fixtures import (
    Color,
    Role,
    Json,
    Greeting,
    Everything,
    Zeroes,
    Quiet,
    Loud,
    Chatty,
    Service,
    Composed,
    MaybeComposed,
    Copy,
)


class Tracing:
    command: Command = Command()
    first: str = tag("positional,required:false")
    second: str = tag("positional,required:false,default:fallback")
    flag: int = tag()
    later: int = tag("default:3")

    def __init__(self):
        self.calls = []

    def on_first_unset(self):
        self.calls.append("first")

    def on_second_unset(self, ctx):
        self.calls.append("second")

    def on_flag_unset(self, ctx):
        self.calls.append(("flag", ctx.is_set("flag")))

    def on_later_unset(self):
        self.calls.append("later")

    def action(self, ctx):
        self.calls.append("action")


class Broken:
    command: Command = Command()
    level: int = tag()

    def on_level_unset(self, ctx, extra):
        pass

    def action(self, ctx):
        pass


class Strict:
    command: Command = Command()
    name: str = tag("positional")

    def action(self, ctx):
        pass


class Typed:
    command: Command = Command()
    port: int = tag()
    ports: list[int] = tag()
    maybe: Optional[int] = tag()
    color: Optional[Color] = tag()

    def action(self, ctx):
        pass


def run(descriptor, *argv):
    application = build(descriptor)
    with redirect_stderr(io.StringIO()):
        application.run(["prog", *argv])
    return descriptor


class TestSeedScenarios(TestCase):
    def testFlagsAndDefaults(self):
        instance = run(Greeting(), "--one=hi", "--two=world")
        self.assertEqual(instance.one, "hi")
        self.assertEqual(instance.two, "world")
        self.assertEqual(instance.three, "1.2.3.4")
        self.assertTrue(instance.invoked)

    def testEveryScalarDefault(self):
        instance = run(Everything())
        self.assertEqual(instance.integer, -5)
        self.assertEqual(instance.int64, 2 ** 63 - 1)
        self.assertEqual(instance.uint, 7)
        self.assertEqual(instance.uint64, 2 ** 64 - 1)
        self.assertEqual(instance.float32, 4.5)
        self.assertEqual(instance.float64, 2.25)
        self.assertIs(instance.enabled, True)
        self.assertEqual(instance.text, "hello")
        self.assertEqual(instance.timeout, timedelta(hours=1, minutes=5, seconds=10))
        self.assertIs(instance.color, Color.GREEN)
        self.assertEqual(instance.integers, [9, 8, 7])
        self.assertEqual(instance.int64s, [9, 8, 7])
        self.assertEqual(instance.uints, [9, 8, 7])
        self.assertEqual(instance.uint64s, [9, 8, 7])
        self.assertEqual(instance.float32s, [1.5, 2.5])
        self.assertEqual(instance.float64s, [1.5, 2.5])
        self.assertEqual(instance.texts, ["a", "b"])
        self.assertEqual(instance.timeouts, [timedelta(seconds=1), timedelta(minutes=2)])
        self.assertEqual(instance.colors, [Color.RED, Color.BLUE])

    def testFloat32ListNarrowsEachElement(self):
        instance = run(Everything(), "--float32s=0.1", "--float32s=0.2")
        narrowed = [struct.unpack("f", struct.pack("f", value))[0] for value in (0.1, 0.2)]
        self.assertEqual(instance.float32s, narrowed)
        self.assertNotEqual(instance.float32s, [0.1, 0.2])

    def testCounterWithShortOptions(self):
        instance = run(Quiet(), "-sss")
        self.assertEqual(instance.silent.value, 3)

    def testNestedSubcommandWithTextType(self):
        instance = run(Service(), "config", "setoption", "NAME", '{"k":1}')
        setoption = instance.subcommands.config.subcommands.setoption
        self.assertTrue(setoption.invoked)
        self.assertEqual(setoption.name, "NAME")
        self.assertEqual(setoption.value, Json({"k": 1}))
        self.assertFalse(instance.subcommands.lifecycle.start.invoked)

    def testInlineBlocks(self):
        instance = run(
            Composed(),
            "--input-role=server",
            "--input-port=81234",
            "--output-role=client",
            "--output-port=81235",
        )
        self.assertIs(instance.input.role, Role.SERVER)
        self.assertEqual(instance.input.port, 81234)
        self.assertIs(instance.output.role, Role.CLIENT)
        self.assertEqual(instance.output.port, 81235)

    def testMissingRequiredPositional(self):
        with self.assertRaises(MissingPositionalError) as context:
            run(Copy())
        self.assertEqual(context.exception.positional, "source")

    def testOptionalVariadicMayBeEmpty(self):
        instance = run(Copy(), "a.txt")
        self.assertEqual(instance.source, "a.txt")
        self.assertEqual(instance.targets, [])
        self.assertTrue(instance.invoked)


class TestPositionals(TestCase):
    def testVariadicConsumesTheRest(self):
        instance = run(Copy(), "a.txt", "b.txt", "c.txt")
        self.assertEqual(instance.targets, ["b.txt", "c.txt"])

    def testTerminatorKeepsDashes(self):
        instance = run(Copy(), "--", "-a", "--b")
        self.assertEqual(instance.source, "-a")
        self.assertEqual(instance.targets, ["--b"])

    def testTooManyArguments(self):
        with self.assertRaises(TooManyArgumentsError) as context:
            run(Strict(), "one", "two", "three")
        self.assertEqual(context.exception.remaining, ("two", "three"))

    def testHelpIsPrintedOnFailure(self):
        application = build(Strict())
        stream = io.StringIO()
        with redirect_stderr(stream), self.assertRaises(BindError):
            application.run(["prog"])
        self.assertIn("usage", stream.getvalue())

    def testCounterPositionalParsesInteger(self):
        class Repeat:
            command: Command = Command()
            times: Counter = tag("positional")

            def action(self, ctx):
                pass

        instance = run(Repeat(), "4")
        self.assertEqual(instance.times, Counter(4))


class TestFallbacks(TestCase):
    def testFallbacksRunInDeclarationOrder(self):
        instance = run(Tracing())
        self.assertEqual(instance.calls, ["first", ("flag", False), "action"])
        self.assertEqual(instance.second, "fallback")
        self.assertEqual(instance.later, 3)

    def testProvidedValuesSkipFallbacks(self):
        instance = run(Tracing(), "--flag=2", "x", "y")
        self.assertEqual(instance.calls, ["action"])
        self.assertEqual((instance.first, instance.second, instance.flag), ("x", "y", 2))

    def testWrongFallbackSignature(self):
        with self.assertRaises(MethodNotFoundError) as context:
            run(Broken())
        self.assertEqual(context.exception.method, "on_level_unset")


class TestSources(TestCase):
    def testEnvironmentFillsUnsetFlags(self):
        with mock.patch.dict(os.environ, {"ONE": "from-env"}):
            instance = run(Greeting())
        self.assertEqual(instance.one, "from-env")

    def testCommandLineBeatsEnvironment(self):
        with mock.patch.dict(os.environ, {"ONE": "from-env"}):
            instance = run(Greeting(), "--one", "cli")
        self.assertEqual(instance.one, "cli")

    def testEnvPrefix(self):
        instance = Greeting()
        application = build_custom(instance, Options(env_prefix="CLIVE_TEST"))
        with mock.patch.dict(os.environ, {"CLIVE_TEST_TWO": "prefixed"}):
            application.run(["prog"])
        self.assertEqual(instance.two, "prefixed")

    def testEmptyEnvironmentIsUnset(self):
        with mock.patch.dict(os.environ, {"ONE": ""}):
            instance = run(Greeting())
        self.assertEqual(instance.one, "hello")

    def testListFlagsAccumulate(self):
        instance = run(Typed(), "--ports=1", "--ports=2,3")
        self.assertEqual(instance.ports, [1, 2, 3])

    def testListFromEnvironmentSplits(self):
        with mock.patch.dict(os.environ, {"PORTS": "4,5"}):
            instance = run(Typed())
        self.assertEqual(instance.ports, [4, 5])

    def testCounterTakesIntegerWithoutShortOptions(self):
        instance = run(Loud(), "--silent=3")
        self.assertEqual(instance.silent, Counter(3))

    def testCounterWithoutShortOptionsNeedsValue(self):
        with self.assertRaises(FieldAssignError):
            run(Loud(), "--silent=loud")

    def testFieldShortOptCounts(self):
        instance = run(Chatty(), "-v", "--verbose", "--silent=4")
        self.assertEqual(instance.verbose, Counter(2))
        self.assertEqual(instance.silent, Counter(4))

    def testCommandShortOptCountsLongOccurrences(self):
        instance = run(Quiet(), "--silent", "-s")
        self.assertEqual(instance.silent, Counter(2))

    def testCounterFromEnvironment(self):
        with mock.patch.dict(os.environ, {"SILENT": "5"}):
            instance = run(Loud())
        self.assertEqual(instance.silent, Counter(5))


class TestPointers(TestCase):
    def testUnsetPointerStaysNone(self):
        instance = run(Typed())
        self.assertIsNone(instance.maybe)
        self.assertIsNone(instance.color)

    def testPointerIsAllocatedWhenSet(self):
        instance = run(Typed(), "--maybe=0", "--color=Blue")
        self.assertEqual(instance.maybe, 0)
        self.assertIs(instance.color, Color.BLUE)

    def testOptionalInlineIsAllocatedOnDemand(self):
        instance = run(MaybeComposed())
        self.assertIsNone(instance.input)
        instance = run(MaybeComposed(), "--input-port=8080")
        self.assertEqual(instance.input.port, 8080)
        self.assertIs(instance.input.role, Role.SERVER)

    def testZeroesSurviveAnEmptyRun(self):
        instance = run(Zeroes())
        self.assertEqual(instance.counter, Counter(0))
        self.assertIsNone(instance.maybes)


class TestAssignFailures(TestCase):
    def testBadIntegerIsWrapped(self):
        with self.assertRaises(FieldAssignError) as context:
            run(Typed(), "--port=eighty")
        self.assertEqual(context.exception.field, "port")
        self.assertIs(context.exception.type, int)
        self.assertIn("--port", context.exception.source)
        self.assertIsInstance(context.exception.__cause__, ValueError)

    def testBadPositionalIsWrapped(self):
        class Numbers:
            command: Command = Command()
            count: int = tag("positional")

            def action(self, ctx):
                pass

        with self.assertRaises(FieldAssignError) as context:
            run(Numbers(), "many")
        self.assertIn("COUNT", context.exception.source)

    def testBadVariantIsWrapped(self):
        with self.assertRaises(FieldAssignError):
            run(Typed(), "--color=Purple")


if __name__ == "__main__":
    unittest.main()
