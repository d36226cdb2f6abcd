"""
Loader behavioral tests (structures into flag trees).

Scope
- Validate flag paths for groups, inline values and positionals.
- Validate load-time faults (malformed tags, unsupported types, duplicate
  paths and shorthands, non-aggregate roots).
- Validate mutation points: None allocation and __default__ ordering.
- Validate capability detection (first __invoke__/__route__/__help__ wins).

Conventions
- Test method names follow CamelCase per project convention.
- Structures are plain dataclasses; shared ones live at module level.
"""

import unittest
from dataclasses import dataclass, field
from unittest import TestCase

from structargs import (
    DuplicatePathError,
    DuplicateShorthandError,
    FlagGroup,
    MalformedDeclarationError,
    NonAggregateError,
    UnrecognizedCommand,
    UnsupportedTypeError,
    Uint16,
    ask,
    changed,
    load,
)


@dataclass
class Endpoint:
    port: Uint16 = ask("--port", default=0, help="listening port")
    host: str = ask("--host", default="localhost")


@dataclass
class Server:
    ws: Endpoint = ask(".ws", default_factory=Endpoint, help="websocket endpoint")
    tcp: Endpoint | None = ask(".tcp", default=None)
    name: str = ask("<name>", default="")
    extra: str = ask("[extra]", default="")
    note: str = ask("-", default="untouched")
    plain: int = 0


@dataclass
class Trace:
    order: list = field(default_factory=list)


@dataclass
class Leaf:
    value: int = ask("--value", default=0)
    trace: Trace | None = None

    def __default__(self):
        self.trace.order.append("leaf")
        self.value = 2


@dataclass
class Branch:
    leaf: Leaf = ask(".", default_factory=Leaf)
    value_changed: bool = changed("value")
    trace: Trace = field(default_factory=Trace)

    def __post_init__(self):
        self.leaf.trace = self.trace

    def __default__(self):
        self.trace.order.append("branch")
        self.leaf.value = 1


class TestLoaderPaths(TestCase):
    """Flag tree shape after a load."""

    def testGroupsAndPositionals(self):
        server = Server()
        description = load(server)
        self.assertEqual(
            [prefixed.path for prefixed in description.flags],
            ["name", "extra", "ws.port", "ws.host", "tcp.port", "tcp.host"],
        )
        self.assertEqual(description.required, ["name"])
        self.assertEqual(description.optional, ["extra"])

    def testNoneGroupIsAllocated(self):
        server = Server()
        load(server)
        self.assertIsInstance(server.tcp, Endpoint)

    def testGroupTree(self):
        description = load(Server())
        groups = list(description.root.walk())
        self.assertEqual([path for path, _ in groups], ["", "ws", "tcp"])
        self.assertTrue(all(isinstance(group, FlagGroup) for _, group in groups))
        self.assertEqual(groups[1][1].help, "websocket endpoint")
        self.assertEqual(groups[2][1].help, "")

    def testGroupHelpIsAlwaysText(self):
        self.assertEqual(FlagGroup("plain").help, "")
        self.assertEqual(FlagGroup("plain", help=None).help, "")
        self.assertEqual(FlagGroup(help=lambda: None).help, "")
        self.assertEqual(FlagGroup(help=lambda: "root text").help, "root text")

    def testIgnoredAndUntaggedFieldsAreSkipped(self):
        description = load(Server())
        paths = {prefixed.path for prefixed in description.flags}
        self.assertNotIn("note", paths)
        self.assertNotIn("plain", paths)

    def testShortOnlyFlagUsesTheLetter(self):
        @dataclass
        class Verbose:
            verbose: bool = ask("-v", default=False)

        prefixed, = load(Verbose()).flags
        self.assertEqual(prefixed.path, "v")
        self.assertEqual(prefixed.shorthand, "v")

    def testDefaultIsRenderedAtBindTime(self):
        @dataclass
        class Options:
            port: Uint16 = ask("--port", default=8080)

        options = Options()
        prefixed, = load(options).flags
        options.port = 1
        self.assertEqual(prefixed.flag.default, "8080")
        self.assertEqual(prefixed.flag.typename, "uint16")


class TestLoaderFaults(TestCase):
    """Load-time faults abandon the load."""

    def testMalformedDeclaration(self):
        @dataclass
        class Broken:
            value: int = ask("value", default=0)

        with self.assertRaises(MalformedDeclarationError):
            load(Broken())

    def testUnsupportedType(self):
        @dataclass
        class Broken:
            mapping: dict = ask("--mapping", default_factory=dict)

        with self.assertRaises(UnsupportedTypeError) as context:
            load(Broken())
        self.assertIn("mapping", str(context.exception))

    def testDuplicateGroupPath(self):
        @dataclass
        class Twice:
            first: Endpoint = ask(".net", default_factory=Endpoint)
            second: Endpoint = ask(".net", default_factory=Endpoint)

        with self.assertRaises(DuplicatePathError):
            load(Twice())

    def testDuplicateFlagPathThroughInline(self):
        @dataclass
        class Clash:
            host: str = ask("--host", default="")
            endpoint: Endpoint = ask(".", default_factory=Endpoint)

        with self.assertRaises(DuplicatePathError):
            load(Clash())

    def testDuplicateShorthand(self):
        @dataclass
        class Clash:
            port: int = ask("--port -p", default=0)
            path: str = ask("--path -p", default="")

        with self.assertRaises(DuplicateShorthandError):
            load(Clash())

    def testShorthandIsUniqueAcrossGroups(self):
        @dataclass
        class Pinned:
            port: int = ask("--port -p", default=0)

        @dataclass
        class Clash:
            ws: Pinned = ask(".ws", default_factory=Pinned)
            tcp: Pinned = ask(".tcp", default_factory=Pinned)

        with self.assertRaises(DuplicateShorthandError):
            load(Clash())

    def testNonAggregateRoot(self):
        for object in (42, "text", Endpoint):
            with self.subTest(object=object):
                with self.assertRaises(NonAggregateError):
                    load(object)

    def testNonAggregateGroup(self):
        @dataclass
        class Broken:
            group: int | None = ask(".group", default=None)

        with self.assertRaises(NonAggregateError):
            load(Broken())


class TestLoaderDefaults(TestCase):
    """__default__ ordering and capability detection."""

    def testOuterDefaultsRunFirst(self):
        branch = Branch()
        load(branch)
        self.assertEqual(branch.trace.order, ["branch", "leaf"])
        self.assertEqual(branch.leaf.value, 2)

    def testChangedTrackingIsRegistered(self):
        branch = Branch()
        description = load(branch)
        self.assertIs(branch.value_changed, False)
        with self.assertRaises(UnrecognizedCommand):
            description.execute(["--value", "5"])
        self.assertIs(branch.value_changed, True)
        self.assertEqual(branch.leaf.value, 5)

    def testFirstCapabilityWins(self):
        calls = []

        @dataclass
        class Inner:
            def __invoke__(self, *args):
                calls.append("inner")

            def __help__(self):
                return "inner help"

        @dataclass
        class Outer:
            inner: Inner = ask(".", default_factory=Inner)

            def __invoke__(self, *args):
                calls.append("outer")

        description = load(Outer())
        self.assertIsInstance(description.command, Outer)
        self.assertIsInstance(description.helper, Inner)
        self.assertIsNone(description.router)
        self.assertEqual(description.help, "inner help")
        description.execute([])
        self.assertEqual(calls, ["outer"])

    def testDescriptionCanBeExtended(self):
        @dataclass
        class Extra:
            level: int = ask("--level", default=0)

        description = load(Endpoint())
        description.load(Extra())
        self.assertEqual([prefixed.path for prefixed in description.flags], ["port", "host", "level"])


if __name__ == "__main__":
    unittest.main()
