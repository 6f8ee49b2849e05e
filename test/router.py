"""
Context router tests (root/parent/current lookups, run hooks).

Scope
- Validate lookups from actions of single and multi-descriptor applications.
- Validate NoRootError/NoParentError/NoCurrentError and their paths.
- Validate the Command marker and placed handles.

Conventions
- Test method names follow CamelCase per project convention.
- Probes record either the looked-up descriptor or the RouterError raised.
"""

import unittest
from typing import Optional
from unittest import TestCase

from clive import Application, Command, build, build_subcommands
from clive.faults import RouterError, NoRootError, NoParentError, NoCurrentError
from clive.router import ROOT
from clive.tags import Tag

from fixtures import Launcher


class Probe:
    command: Command = Command()

    def __init__(self):
        self.seen = {}

    def action(self, ctx):
        for lookup in ("root", "parent", "current"):
            try:
                self.seen[lookup] = getattr(self.command, lookup)(ctx)
            except RouterError as error:
                self.seen[lookup] = error


class Sibling(Probe):
    command: Command = Command()


class ProbeGroup:
    probe: Optional[Probe]


class Host:
    command: Command = Command()
    subcommands: ProbeGroup


class TestSingleApplication(TestCase):
    def testLookupsFromAChild(self):
        host = Host()
        build(host).run(["host", "probe"])
        probe = host.subcommands.probe
        self.assertIs(probe.seen["root"], host)
        self.assertIs(probe.seen["parent"], host)
        self.assertIs(probe.seen["current"], probe)

    def testRootIsItsOwnParent(self):
        probe = Probe()
        build(probe).run(["probe"])
        self.assertIs(probe.seen["root"], probe)
        self.assertIs(probe.seen["parent"], probe)
        self.assertIs(probe.seen["current"], probe)

    def testStoreIsKeyedByPath(self):
        host = Host()
        application = build(host)
        self.assertIs(application.metadata[ROOT], host)
        self.assertIs(application.metadata["/host"], host)
        self.assertIs(application.metadata["/host/probe"], host.subcommands.probe)


class TestMultiApplication(TestCase):
    def testNoRootWithSeveralDescriptors(self):
        probe, sibling = Probe(), Sibling()
        build(probe, sibling).run(["tool", "probe"])
        self.assertIsInstance(probe.seen["root"], NoRootError)
        self.assertEqual(probe.seen["root"].path, ROOT)
        self.assertIsInstance(probe.seen["parent"], NoParentError)
        self.assertIs(probe.seen["current"], probe)
        self.assertEqual(sibling.seen, {})

    def testDetachedProgramsRegisterWhenBound(self):
        probe = Probe()
        application = Application("tool", children=build_subcommands(probe))
        self.assertNotIn("/probe", application.metadata)
        application.run(["tool", "probe"])
        self.assertIs(application.metadata["/probe"], probe)
        self.assertIs(probe.seen["current"], probe)


class TestHandles(TestCase):
    def testMarkerCarriesTag(self):
        marker = Command("usage:'serve'")
        self.assertIsInstance(marker.tag, Tag)
        self.assertEqual(marker.tag.text, "usage:'serve'")
        self.assertEqual(repr(marker), "Command(\"usage:'serve'\")")

    def testPlacedKeepsTag(self):
        marker = Command("shortOpt")
        handle = marker.placed(ROOT, "/serve")
        self.assertIs(handle.tag, marker.tag)
        self.assertEqual(handle.parent_path, ROOT)
        self.assertEqual(handle.current_path, "/serve")
        self.assertIn("/serve", repr(handle))

    def testUnknownCurrentPathRaises(self):
        seen = []
        handle = Command().placed(ROOT, "/nowhere")
        Application("tool", action=lambda ctx: seen.append(ctx)).run(["tool"])
        with self.assertRaises(NoCurrentError) as context:
            handle.current(seen[0])
        self.assertEqual(context.exception.path, "/nowhere")

    def testRouterErrorsAreLookupErrors(self):
        self.assertTrue(issubclass(NoParentError, LookupError))


class TestRunHook(TestCase):
    def testRunReplacesAction(self):
        launcher = Launcher()
        build(launcher).run(["launcher"])
        self.assertTrue(launcher.launched)

    def testRunSeesBoundValues(self):
        launcher = Launcher()
        seen = []
        launcher.run = lambda handle, ctx: seen.append(handle.current(ctx).target)
        build(launcher).run(["launcher", "moon"])
        self.assertEqual(seen, ["moon"])


if __name__ == "__main__":
    unittest.main()
