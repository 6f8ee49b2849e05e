"""
Tag parser tests (grammar, quoting, defaulting, failures).

Scope
- Validate bare tokens and key/value sections.
- Validate single-quote escaping of commas.
- Validate name/env/required defaulting through TagSpec.resolve().
- Validate failures for unknown keys, bad booleans and malformed sections.

Conventions
- Test method names follow CamelCase per project convention.
- Tests use clive.tags directly (parse_tag, tag, parse_bool).
"""

import unittest
from unittest import TestCase

from clive.faults import ConfigError, InvalidTagError, UnknownTagKeyError, InvalidBooleanError
from clive.tags import Tag, tag, parse_tag, parse_bool


class TestParseTag(TestCase):
    def testEmptyTagDeclaresNothing(self):
        spec = parse_tag("")
        self.assertFalse(spec.skip)
        self.assertFalse(spec.positional)
        self.assertFalse(spec.inline)
        self.assertEqual(spec.aliases, ())

    def testBareTokens(self):
        spec = parse_tag("positional,required,shortOpt,entrypoint")
        self.assertTrue(spec.positional)
        self.assertIs(spec.required, True)
        self.assertIs(spec.short_opt, True)
        self.assertTrue(spec.entrypoint)

    def testSkipToken(self):
        self.assertTrue(parse_tag("-").skip)

    def testInlineToken(self):
        self.assertTrue(parse_tag("inline").inline)

    def testKeyValueSections(self):
        spec = parse_tag("name:api_address,usage:'the address',hidden:true,default:0.0.0.0")
        self.assertEqual(spec.name, "api_address")
        self.assertEqual(spec.usage, "the address")
        self.assertTrue(spec.hidden)
        self.assertEqual(spec.default, "0.0.0.0")

    def testQuotedCommasAreLiteral(self):
        spec = parse_tag("alias:'a,i',default:'9,8,7',usage:'one, two'")
        self.assertEqual(spec.aliases, ("a", "i"))
        self.assertEqual(spec.default, "9,8,7")
        self.assertEqual(spec.usage, "one, two")

    def testEnvList(self):
        self.assertEqual(parse_tag("env:'HOST,ADDRESS'").envs, ("HOST", "ADDRESS"))

    def testExplicitRequiredFalse(self):
        self.assertIs(parse_tag("positional,required:false").required, False)

    def testGoBooleanSpellings(self):
        for text in ("1", "t", "T", "TRUE", "true", "True"):
            self.assertIs(parse_tag(f"hidden:{text}").hidden, True)
        for text in ("0", "f", "F", "FALSE", "false", "False"):
            self.assertIs(parse_tag(f"hidden:{text}").hidden, False)

    def testUnknownKeyRaises(self):
        with self.assertRaises(UnknownTagKeyError):
            parse_tag("colour:red")

    def testUnknownBareTokenRaises(self):
        with self.assertRaises(UnknownTagKeyError):
            parse_tag("optional")

    def testInvalidBooleanRaises(self):
        with self.assertRaises(InvalidBooleanError):
            parse_tag("required:maybe")

    def testMalformedSectionRaises(self):
        with self.assertRaises(InvalidTagError):
            parse_tag(":value")

    def testKeyWithoutValueRaises(self):
        with self.assertRaises(InvalidTagError):
            parse_tag("name")

    def testTagErrorsAreConfigErrors(self):
        with self.assertRaises(ConfigError):
            parse_tag("shortOpt:nope")


class TestResolve(TestCase):
    def testNameDefaultsToFieldName(self):
        name, envs, required = parse_tag("").resolve("api_address")
        self.assertEqual(name, "api-address")
        self.assertEqual(envs, ("API_ADDRESS",))
        self.assertFalse(required)

    def testDeclaredNameWins(self):
        name, envs, _ = parse_tag("name:listen").resolve("address")
        self.assertEqual(name, "listen")
        self.assertEqual(envs, ("LISTEN",))

    def testInlinePrefix(self):
        name, envs, _ = parse_tag("").resolve("Role", ("Input",))
        self.assertEqual(name, "input-role")
        self.assertEqual(envs, ("INPUT_ROLE",))

    def testEnvPrefix(self):
        _, envs, _ = parse_tag("").resolve("port", env_prefix="APP")
        self.assertEqual(envs, ("APP_PORT",))

    def testDeclaredEnvIgnoresPrefix(self):
        _, envs, _ = parse_tag("env:PORT").resolve("port", env_prefix="APP")
        self.assertEqual(envs, ("PORT",))

    def testPositionalRequiredUnlessDefault(self):
        self.assertTrue(parse_tag("positional").resolve("name")[2])
        self.assertFalse(parse_tag("positional,default:x").resolve("name")[2])
        self.assertFalse(parse_tag("positional,required:false").resolve("name")[2])


class TestTagMarker(TestCase):
    def testTagCarriesText(self):
        self.assertEqual(tag("positional").text, "positional")

    def testTagIsHashable(self):
        self.assertEqual({tag("a"), Tag("a")}, {tag("a")})

    def testTagRejectsNonStrings(self):
        with self.assertRaises(TypeError):
            tag(1)

    def testParseBoolRejectsOtherSpellings(self):
        with self.assertRaises(ValueError):
            parse_bool("yes")


if __name__ == "__main__":
    unittest.main()
