"""
structargs commands (descriptions, execution and usage).

Scope
- CommandDescription: the loaded form of one structure. It holds the flag
  tree, the positional slots in declaration order, the change-tracking table
  and the command/router/helper capabilities found while loading.
- execute(): route check, flag parsing, positional binding and dispatch.
- usage()/render(): plain and rich usage text derived from the description.
- load() and invoke(): module-level entry points.

Execution (per description, recursing once per route segment)
1. help check: a first token of "help", "--help" or "-h" raises HelpSignal
   for this description. --help and -h are left to a flag named help or
   with shorthand h when one exists.
2. route check: with a router and at least one token, __route__(first)
   either returns a structure (loaded fresh and executed on the rest),
   returns None (fall through with the token kept) or raises.
3. flag parsing over every flag of the tree; deprecated flags pass through
   the deprecation callback first, supplied flags are marked as seen and
   flip their change-tracking booleans.
4. positional binding: unseen required slots from the front of the leftover
   tokens (failing when too few remain), then unseen optional slots while
   tokens last.
5. dispatch: __invoke__(*remaining), or UnrecognizedCommand without one.

Faults and signals leaving execute() carry the description they were raised
from in their description attribute.

Caveat
- Flags belong to the route segment they follow: "cmd sub --flag" works,
  "cmd --flag sub" does not reach sub.
"""
import logging
import shlex
import sys
from collections import defaultdict
from collections.abc import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .faults import (
    CommandException,
    CommandSignal,
    DeprecatedFlagError,
    DeprecatedFlagWarning,
    DuplicatePathError,
    DuplicateShorthandError,
    HelpSignal,
    InvalidValueError,
    MissingArgumentsError,
    UnrecognizedCommand,
    console,
    trigger,
)
from .flags import FlagGroup, PrefixedFlag
from .loader import Loader
from .tokenizer import parse_args
from .utils import ModelType, Unset, coalesce
from .values import registry as default_registry

logger = logging.getLogger(__name__)

# Defaults rendering like these are not shown in usage.
_ZEROS = frozenset(("", "0", "false", "0s", "[]", "<nil>"))


def _deprecation(prefixed):
    return DeprecatedFlagWarning(
        f"flag --{prefixed.path} has been deprecated, {prefixed.flag.deprecated}",
        flag=prefixed.path,
        reason=prefixed.flag.deprecated,
    )


def _warn(prefixed):
    trigger(_deprecation(prefixed))


class CommandDescription(metaclass=ModelType):
    """
    Loaded, executable representation of one or more structures.

    Properties
    - root: FlagGroup at the top of the flag tree
    - command, router, helper: the structures providing __invoke__,
      __route__ and __help__ (None when absent; the first one found wins)
    """

    __introspectable__ = (
        "root",
        "command",
        "router",
        "helper",
    )
    __displayable__ = (
        "command",
        "router",
        "helper",
    )

    def __new__(cls, *, registry=Unset):
        self = super().__new__(cls)
        self._registry = coalesce(registry, default_registry)
        self._root = FlagGroup()
        self._command = None
        self._router = None
        self._helper = None
        self._paths = set()
        self._groups = set()
        self._shorthands = {}
        self._positionals = []
        self._changes = {}
        return self

    # ── loading ────────────────────────────────────────────────────────────

    def load(self, object, /):
        """
        Extend this description with another structure.

        Returns the description. Raises LoadError subclasses.
        """
        return Loader(self, registry=self._registry).load(object)

    def _adopt(self, object):
        for slot, hook in (("_command", "__invoke__"), ("_router", "__route__"), ("_helper", "__help__")):
            if getattr(self, slot) is None and callable(getattr(object, hook, None)):
                logger.debug("%s provides %s", type(object).__name__, hook)
                setattr(self, slot, object)

    def _claim(self, path):
        if path in self._groups:
            raise DuplicatePathError(f"duplicate group path {path!r}", path=path)
        self._groups.add(path)

    def _bind(self, path, flag, group):
        if path in self._paths:
            raise DuplicatePathError(f"duplicate flag path {path!r}", path=path)
        if flag.shorthand is not None and flag.shorthand in self._shorthands:
            raise DuplicateShorthandError(
                f"shorthand -{flag.shorthand} of {path!r} is already used by {self._shorthands[flag.shorthand]!r}",
                path=path,
                shorthand=flag.shorthand,
            )
        self._paths.add(path)
        if flag.shorthand is not None:
            self._shorthands[flag.shorthand] = path
        prefixed = PrefixedFlag(path, group.add(flag))
        if flag.positional:
            self._positionals.append(prefixed)
        logger.debug("bound %s as %s", path, flag.typename or type(flag.value).__name__)

    def _track(self, path, reference):
        self._changes.setdefault(path, []).append(reference)

    # ── introspection ──────────────────────────────────────────────────────

    @property
    def flags(self):
        """Every PrefixedFlag of the tree, depth-first."""
        return list(self._root.flatten())

    @property
    def required(self):
        """Paths of the required positional slots, in declaration order."""
        return [prefixed.path for prefixed in self._positionals if prefixed.flag.required]

    @property
    def optional(self):
        """Paths of the optional positional slots, in declaration order."""
        return [prefixed.path for prefixed in self._positionals if not prefixed.flag.required]

    @property
    def help(self):
        if self._helper is None:
            return ""
        return self._helper.__help__()

    # ── execution ──────────────────────────────────────────────────────────

    def execute(self, args=(), /, *, deprecated=Unset):
        """
        Run the command line tail args against this description.

        Parameters
        - args: iterable of str (no program name).
        - deprecated: callable(prefixed) called before a deprecated flag is
          applied; raising aborts the run with DeprecatedFlagError. Defaults
          to emitting DeprecatedFlagWarning.

        Returns the description that finally ran.

        Raises
        - HelpSignal, UnrecognizedCommand
        - ParseError subclasses, RoutingError, LoadError subclasses (from
          loading a routed structure), and whatever __invoke__ raises.
        """
        if isinstance(args, str) or not isinstance(args, Iterable):
            raise TypeError("execute() argument must be an iterable of strings")
        try:
            return self._execute(list(args), coalesce(deprecated, _warn))
        except (CommandException, CommandSignal) as fault:
            if fault.description is None:
                fault.description = self
            raise

    def _requests_help(self, token):
        match token:
            case "help":
                return True
            case "--help":
                return "help" not in self._paths
            case "-h":
                return "h" not in self._shorthands
        return False

    def _execute(self, args, deprecated):
        if args and self._requests_help(args[0]):
            raise HelpSignal(self)

        if self._router is not None and args:
            if (structure := self._router.__route__(args[0])) is not None:
                logger.debug("routing %r to %s", args[0], type(structure).__name__)
                return load(structure, registry=self._registry).execute(args[1:], deprecated=deprecated)
            logger.debug("route %r falls through to flag parsing", args[0])

        flags = self.flags
        seen = set()

        def apply(prefixed, text):
            flag = prefixed.flag
            if flag.deprecated is not None:
                try:
                    deprecated(prefixed)
                except Exception as error:
                    raise DeprecatedFlagError(
                        f"flag --{prefixed.path} is deprecated: {flag.deprecated}",
                        flag=prefixed.path,
                        reason=flag.deprecated,
                    ) from error
            try:
                flag.apply(text)
            except ValueError as error:
                raise InvalidValueError(
                    f"failed to apply flag {prefixed.path}: {text!r}: {error}",
                    flag=prefixed.path,
                    token=text,
                    hint=f"expected a value of type {flag.typename}" if flag.typename else Unset,
                ) from error
            logger.debug("applied %s = %r", prefixed.path, text)
            seen.add(prefixed.path)
            for reference in self._changes.get(prefixed.path, ()):
                reference.set(True)

        remaining = parse_args(
            sorted(flags, key=lambda prefixed: prefixed.path),
            sorted((prefixed for prefixed in flags if prefixed.shorthand is not None), key=lambda prefixed: prefixed.shorthand),
            args,
            apply,
        )

        required = [prefixed for prefixed in self._positionals if prefixed.flag.required and prefixed.path not in seen]
        optional = [prefixed for prefixed in self._positionals if not prefixed.flag.required and prefixed.path not in seen]

        if len(remaining) < len(required):
            missing = [prefixed.path for prefixed in required]
            raise MissingArgumentsError(
                f"got {len(remaining)} arguments, but expected {len(required)}, "
                f"missing required arguments: {', '.join(missing)}",
                expected=len(required),
                got=len(remaining),
                missing=tuple(missing),
            )
        for prefixed, token in zip(required, remaining):
            apply(prefixed, token)
        remaining = remaining[len(required):]

        bound = min(len(optional), len(remaining))
        for prefixed, token in zip(optional, remaining):
            apply(prefixed, token)
        remaining = remaining[bound:]

        if self._command is None:
            raise UnrecognizedCommand(self)
        logger.debug("invoking %s with %r", type(self._command).__name__, remaining)
        self._command.__invoke__(*remaining)
        return self

    # ── usage ──────────────────────────────────────────────────────────────

    def _describe(self, route):
        try:
            structure = self._router.__route__(route)
        except Exception:
            logger.debug("route %r failed to load", route, exc_info=True)
            return "[error] failed to load command route", "error"
        if structure is None:
            return "[error] command route not available", "error"
        try:
            return load(structure, registry=self._registry).help, "children-description"
        except Exception:
            logger.debug("route %r is invalid", route, exc_info=True)
            return "[error] command is invalid", "error"

    def render(self, *, show_hidden=False, colorful=False):
        """
        Usage as rich Text.

        Palette keys
        - program-name, metavar, flag-count, description-section, usage-section
        - group-label, argument-description, option-name, default, deprecated-name
        - children, children-description, error

        Define a mapping named __styles__ in __main__ to override any entry.
        """
        styles = defaultdict(str, {
            "program-name": "bold #FF4D94",
            "metavar": "bold #FFD600",
            "flag-count": "#737373",
            "description-section": "italic #A3A3A3",
            "usage-section": "bold #36C5F0",
            "group-label": "bold #FFFFFF",
            "argument-description": "#9CA3AF",
            "option-name": "bold #00E6FF",
            "default": "#737373",
            "deprecated-name": "bold #F97316",
            "children": "bold #36C5F0",
            "children-description": "#9CA3AF",
            "error": "bold #EF4444",
        } | getattr(__import__("__main__"), "__styles__", {}))

        text = Text()

        def emit(fragment, style=""):
            text.append(fragment, styles[style] if colorful and style else None)

        flags = [prefixed for prefixed in self.flags if show_hidden or not prefixed.flag.hidden]

        emit("(command)", "program-name")
        for path in self.required:
            emit(" ")
            emit(f"<{path}>", "metavar")
        for path in self.optional:
            emit(" ")
            emit(f"[{path}]", "metavar")
        if flags:
            emit(f" ({len(flags)} flag{'s' if len(flags) != 1 else ''})", "flag-count")
        emit("\n\n")

        if help := self.help:
            emit(help, "description-section")
            emit("\n\n")

        if flags:
            emit("Flags/args:\n", "usage-section")
            rows = []
            for path, group in self._root.walk():
                if path:
                    rows.append((path, group.help))
                for flag in group.flags:
                    if flag.hidden and not show_hidden:
                        continue
                    left = (f"  -{flag.shorthand}, " if flag.shorthand else "      ") + f"--{path}{'.' if path else ''}{flag.name}"
                    typename = f" {flag.typename}" if flag.typename and flag.implicit is None else ""
                    rows.append((left, typename, flag))
            width = max((len(row[0]) + len(row[1]) for row in rows if len(row) == 3), default=0) + 3
            for row in rows:
                if len(row) == 2:
                    path, help = row
                    emit("\n  ")
                    emit(path, "group-label")
                    if help:
                        emit(": ")
                        emit(help, "argument-description")
                    emit("\n")
                    continue
                left, typename, flag = row
                emit(left, "option-name")
                emit(typename, "metavar")
                emit(" " * (width - len(left) - len(typename)))
                emit(flag.help, "argument-description")
                if flag.default not in _ZEROS:
                    emit(f" (default: {flag.default})", "default")
                if flag.deprecated is not None:
                    emit(f" (DEPRECATED: {flag.deprecated})", "deprecated-name")
                emit("\n")
            emit("\n")

        if self._router is not None and callable(routes := getattr(self._router, "__routes__", None)):
            emit("Sub commands:\n", "usage-section")
            for route in routes():
                emit("  ")
                emit(route, "children")
                emit(" " * (17 - len(route)) if len(route) < 15 else "  ")
                emit(*self._describe(route))
                emit("\n")

        return text

    def usage(self, *, show_hidden=False):
        """Plain usage text (hidden flags omitted unless show_hidden)."""
        return self.render(show_hidden=show_hidden).plain

    def __rich__(self):
        return self.render(colorful=True)


def load(object, /, *, registry=Unset):
    """
    Load a structure into a fresh CommandDescription.

    Raises LoadError subclasses.
    """
    return CommandDescription(registry=registry).load(object)


def _tokens(prompt):
    if prompt is Unset:
        return sys.argv[1:]
    if isinstance(prompt, str):
        return shlex.split(prompt)
    if isinstance(prompt, Iterable):
        tokens = list(prompt)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("invoke() prompt must be a string or an iterable of strings")
        return tokens
    raise TypeError("invoke() prompt must be a string or an iterable of strings")


def invoke(
        object,
        prompt=Unset,
        /,
        *,
        shell=False,
        fancy=False,
        colorful=False,
        show_hidden=False,
        registry=Unset,
        deprecated=Unset,
        prog=Unset,
):
    """
    Convenience runner: load object (unless it already is a description) and
    execute it with prompt.

    Parameters
    - prompt:
      • Unset: read tokens from sys.argv[1:].
      • str: shell-like string; split with shlex.split.
      • Iterable[str]: pre-tokenized sequence.
    - shell: render faults and exit(1) instead of raising.
    - fancy, colorful: rendering of usage and faults.
    - show_hidden: list hidden flags in printed usage.
    - registry: Registry used to bind fields.
    - deprecated: deprecation callback (see CommandDescription.execute).
    - prog: program name shown in fault headers.

    Behavior
    - HelpSignal: usage of the reached description goes to stdout; that
      description is returned.
    - UnrecognizedCommand: usage goes to stderr; exit(1) in shell mode,
      otherwise the signal propagates.
    - CommandException: in shell mode the usage is printed to stderr before
      the fault; faults always go through trigger().
    """
    tokens = _tokens(prompt)
    options = {"shell": shell, "fancy": fancy, "colorful": colorful, "prog": coalesce(prog, None)}
    if deprecated is Unset:
        def deprecated(prefixed):
            trigger(_deprecation(prefixed), **options)

    def show(description, console):
        render = description.render(show_hidden=show_hidden, colorful=colorful)
        console.print(Panel(render, title=options["prog"], title_align="left") if fancy else render)

    try:
        description = object if isinstance(object, CommandDescription) else load(object, registry=registry)
        return description.execute(tokens, deprecated=deprecated)
    except HelpSignal as signal:
        show(signal.description, Console())
        return signal.description
    except UnrecognizedCommand as signal:
        show(signal.description, console)
        if shell:
            sys.exit(1)
        raise
    except CommandException as fault:
        if shell and fault.description is not None:
            show(fault.description, console)
        trigger(fault, **options)


__all__ = (
    "CommandDescription",
    "load",
    "invoke",
)

# Remove the internal metaclass from the module namespace. Not part of the public API.
del ModelType
