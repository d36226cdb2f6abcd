"""
Commands module behavioral tests (execution, routing, deprecation, invoke).

Scope
- Validate the full peer/connect scenario: routing, groups, inline values,
  positionals, lists, defaults, change tracking and the remainder.
- Validate positional binding counts and named binding of positionals.
- Validate routing faults, route fall-through and per-level help.
- Validate the deprecation callback (ordering, counting, aborting).
- Validate invoke() in raising and shell modes.

Conventions
- Test method names follow CamelCase per project convention.
- Console output is captured with contextlib redirection.
"""

import contextlib
import io
import unittest
from dataclasses import dataclass, field
from ipaddress import IPv4Address
from unittest import TestCase

from structargs import (
    DeprecatedFlagError,
    DeprecatedFlagWarning,
    FixedBytes,
    HelpSignal,
    Int32,
    InvalidValueError,
    MissingArgumentsError,
    RoutingError,
    Uint8,
    Uint16,
    UnknownFlagError,
    UnrecognizedCommand,
    ask,
    changed,
    invoke,
    load,
)


@dataclass
class ActorState:
    host_data: str = "old value"


@dataclass
class PeerOptions:
    tag: str = ask("--tag", default="", help="tag to give to peer")
    peer_id: str = ask("<id>", default="", help="ID of the peer, looked up in the peerstore without an address")


@dataclass
class MiscOptions:
    data: Uint8 = ask("<data>", default=0, help="some number")
    awesome: bool = ask("--awesome", default=False, help="Enable awesome feature")
    bad: bool = ask("--bad", default=False, help="Enable bad feature")


@dataclass
class InlineOptions:
    foobar: list[Int32] = ask("--foobar", default_factory=list, help="foobar integers")
    hex: bytes = ask("--hex", default=b"", help="Hex value")

    def __default__(self):
        self.foobar = [4, 5, 6]


@dataclass
class ForkOptions:
    digests: list[FixedBytes[3]] = ask("--digests", default_factory=list, help="some digests")
    more: str = ask("[more]", default="", help="something optional")


@dataclass
class Connect:
    state: ActorState
    addr: IPv4Address | None = ask("--addr", default=None, help="address to connect to")
    port: Uint16 = ask("--port", default=0, help="port to use for connection")
    peer: PeerOptions = ask(".peer", default_factory=PeerOptions, help="Options for peer stuff")
    misc: MiscOptions = ask(".misc", default_factory=MiscOptions, help="Misc. options")
    inline: InlineOptions = ask(".", default_factory=InlineOptions)
    fork: ForkOptions = ask(".fork", default_factory=ForkOptions, help="Fork options")
    port_set: bool = changed("port")
    addr_set: bool = changed("addr")

    def __help__(self):
        return "Connect to a peer"

    def __default__(self):
        self.port = 9000
        self.fork.digests = [b"\xa1\xb2\xc3", b"\xd4\xe5\xf6"]
        self.misc.bad = True

    def __invoke__(self, *args):
        if self.port_set:
            raise RuntimeError("expected port not to be set explicitly")
        if not self.addr_set:
            raise RuntimeError("expected addr to be set explicitly")
        digests = "".join(digest.hex() + "!" for digest in self.fork.digests)
        self.state.host_data = (
            f"{self.addr}:{self.port} #{self.peer.tag} ${self.misc.data} {self.peer.peer_id} ~ {self.fork.more}, "
            f"remaining: {', '.join(args)} ~ digests: {digests} ~ awesome: {self.misc.awesome}, "
            f"bad: {self.misc.bad} ~ foobar: {self.inline.foobar} ~ hex: {self.inline.hex.hex()}"
        )


@dataclass
class Peer:
    state: ActorState = field(default_factory=ActorState)

    def __route__(self, name):
        if name == "connect":
            return Connect(self.state)
        raise RoutingError(f"unknown command {name!r}", route=name)

    def __routes__(self):
        return ["connect"]


@dataclass
class Fetch:
    id: str = ask("<id>", default="")
    more: str = ask("[more]", default="unset")
    calls: list = field(default_factory=list)

    def __invoke__(self, *args):
        self.calls.append(args)


@dataclass
class Endpoint:
    port: Uint16 = ask("--port", default=0)


@dataclass
class Gateway:
    ws: Endpoint = ask(".ws", default_factory=Endpoint)
    tcp: Endpoint = ask(".tcp", default_factory=Endpoint)

    def __invoke__(self, *args):
        pass


@dataclass
class Legacy:
    level: int = ask("--level -l", default=0, deprecated="use --verbosity")
    level_set: bool = changed("level")
    calls: list = field(default_factory=list)

    def __invoke__(self, *args):
        self.calls.append(args)


class TestPeerConnect(TestCase):
    """End-to-end routing into a loaded sub-command."""

    def testRejectedRoute(self):
        description = load(Peer())
        with self.assertRaises(RoutingError) as context:
            description.execute(["bad"])
        self.assertIs(context.exception.description, description)

    def testParentUsage(self):
        usage = load(Peer()).usage()
        self.assertTrue(usage.startswith("(command)\n\nSub commands:\n"), usage)
        self.assertIn("Connect to a peer", usage)

    def testSubCommandHelp(self):
        description = load(Peer())
        with self.assertRaises(HelpSignal) as context:
            description.execute(["connect", "--help"])
        reached = context.exception.description
        self.assertIsNot(reached, description)
        self.assertEqual(reached.help, "Connect to a peer")

        usage = reached.usage()
        self.assertTrue(usage.startswith("(command) <peer.id> <misc.data> [fork.more]"), usage)
        self.assertIn("9000", usage)
        self.assertIn("a1b2c3,d4e5f6", usage)
        self.assertIn("default: 4,5,6", usage)

    def testFullCommandLine(self):
        peer = Peer()
        final = load(peer).execute((
            "connect --addr 1.2.3.4 --peer.tag=123hey somepeerid 42 optionalhere --misc.bad=false "
            "--misc.awesome --fork.digests=a1b2c3,42e5f6,a1b2c3 --foobar=2,0x123,-1,8 --hex 0x1234567890 extra more"
        ).split(" "))
        self.assertIsInstance(final.command, Connect)
        self.assertEqual(
            peer.state.host_data,
            "1.2.3.4:9000 #123hey $42 somepeerid ~ optionalhere, remaining: extra, more ~ "
            "digests: a1b2c3!42e5f6!a1b2c3! ~ awesome: True, bad: False ~ foobar: [2, 291, -1, 8] ~ hex: 1234567890",
        )


class TestPositionals(TestCase):
    """Required and optional slots filled from leftover tokens."""

    def testNoTokens(self):
        with self.assertRaises(MissingArgumentsError) as context:
            load(Fetch()).execute([])
        self.assertEqual(
            str(context.exception),
            "got 0 arguments, but expected 1, missing required arguments: id",
        )
        self.assertEqual(context.exception.options["missing"], ("id",))

    def testOneToken(self):
        fetch = Fetch()
        load(fetch).execute(["a"])
        self.assertEqual((fetch.id, fetch.more, fetch.calls), ("a", "unset", [()]))

    def testTwoTokens(self):
        fetch = Fetch()
        load(fetch).execute(["a", "b"])
        self.assertEqual((fetch.id, fetch.more, fetch.calls), ("a", "b", [()]))

    def testThreeTokens(self):
        fetch = Fetch()
        load(fetch).execute(["a", "b", "c"])
        self.assertEqual((fetch.id, fetch.more, fetch.calls), ("a", "b", [("c",)]))

    def testPositionalByName(self):
        fetch = Fetch()
        load(fetch).execute(["--id=x", "b"])
        self.assertEqual((fetch.id, fetch.more, fetch.calls), ("x", "b", [()]))

    def testTerminatorKeepsDashes(self):
        fetch = Fetch()
        load(fetch).execute(["--", "-a", "--b"])
        self.assertEqual((fetch.id, fetch.more), ("-a", "--b"))


class TestExecution(TestCase):
    """Groups, value faults, help and dispatch."""

    def testGroupsBindIndependently(self):
        gateway = Gateway()
        load(gateway).execute(["--ws.port=1", "--tcp.port=2"])
        self.assertEqual((gateway.ws.port, gateway.tcp.port), (1, 2))

    def testInvalidValue(self):
        gateway = Gateway()
        description = load(gateway)
        with self.assertRaises(InvalidValueError) as context:
            description.execute(["--ws.port=1", "--tcp.port=70000"])
        self.assertIsInstance(context.exception.__cause__, ValueError)
        self.assertIs(context.exception.description, description)
        self.assertEqual(context.exception.options["flag"], "tcp.port")
        # applied before the failing token
        self.assertEqual((gateway.ws.port, gateway.tcp.port), (1, 0))

    def testUnrecognizedCommand(self):
        @dataclass
        class Options:
            level: int = ask("--level", default=0)

        options = Options()
        description = load(options)
        with self.assertRaises(UnrecognizedCommand) as context:
            description.execute(["--level", "3"])
        self.assertIs(context.exception.description, description)
        self.assertEqual(options.level, 3)

    def testHelpWordAndShadowing(self):
        @dataclass
        class Shadow:
            help: bool = ask("--help", default=False)
            calls: list = field(default_factory=list)

            def __invoke__(self, *args):
                self.calls.append(args)

        shadow = Shadow()
        load(shadow).execute(["--help"])
        self.assertIs(shadow.help, True)
        self.assertEqual(shadow.calls, [()])
        with self.assertRaises(HelpSignal):
            load(Shadow()).execute(["help"])

    def testRouteFallThrough(self):
        @dataclass
        class Lenient:
            name: str = ask("<name>", default="")

            def __route__(self, route):
                return None

            def __invoke__(self, *args):
                pass

        lenient = Lenient()
        load(lenient).execute(["anything"])
        self.assertEqual(lenient.name, "anything")

    def testArgumentsMustBeTokens(self):
        with self.assertRaises(TypeError):
            load(Fetch()).execute("a b")


class TestDeprecation(TestCase):
    """Deprecation callback ordering and aborts."""

    def testCallbackBeforeEachOccurrence(self):
        legacy = Legacy()
        observed = []
        load(legacy).execute(["--level=3", "-l", "4"], deprecated=lambda prefixed: observed.append((prefixed.path, legacy.level)))
        self.assertEqual(observed, [("level", 0), ("level", 3)])
        self.assertEqual(legacy.level, 4)
        self.assertIs(legacy.level_set, True)

    def testCallbackAborts(self):
        def reject(prefixed):
            raise RuntimeError("no deprecated flags")

        legacy = Legacy()
        with self.assertRaises(DeprecatedFlagError) as context:
            load(legacy).execute(["--level=3"], deprecated=reject)
        self.assertIsInstance(context.exception.__cause__, RuntimeError)
        self.assertEqual((legacy.level, legacy.level_set, legacy.calls), (0, False, []))

    def testDefaultCallbackWarns(self):
        legacy = Legacy()
        with self.assertWarns(DeprecatedFlagWarning) as context:
            load(legacy).execute(["--level=1"])
        self.assertIn("use --verbosity", str(context.warning))
        self.assertEqual(legacy.level, 1)


class TestInvoke(TestCase):
    """invoke() output and shell mode."""

    def testPromptIsSplit(self):
        fetch = Fetch()
        invoke(fetch, "'a b' c")
        self.assertEqual((fetch.id, fetch.more), ("a b", "c"))

    def testHelpPrintsUsage(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            description = invoke(Peer(), ["connect", "-h"])
        self.assertEqual(description.help, "Connect to a peer")
        self.assertIn("(command) <peer.id> <misc.data> [fork.more]", stdout.getvalue())

    def testFaultRaisesOutsideShell(self):
        with self.assertRaises(UnknownFlagError) as context:
            invoke(Fetch(), ["--nope"])
        self.assertEqual(context.exception.options["shell"], False)

    def testFaultExitsInShell(self):
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr), self.assertRaises(SystemExit) as context:
            invoke(Fetch(), ["--nope"], shell=True, prog="fetch")
        self.assertEqual(context.exception.code, 1)
        self.assertIn("(command) <id> [more]", stderr.getvalue())
        self.assertIn("unrecognized flag: nope", stderr.getvalue())

    def testUnrecognizedCommand(self):
        @dataclass
        class Inert:
            pass

        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            with self.assertRaises(UnrecognizedCommand):
                invoke(Inert(), [])
            with self.assertRaises(SystemExit):
                invoke(Inert(), [], shell=True)
        self.assertIn("(command)", stderr.getvalue())

    def testPromptMustBeTokens(self):
        with self.assertRaises(TypeError):
            invoke(Fetch(), [1, 2])


if __name__ == "__main__":
    unittest.main()
