"""
structargs faults (errors, signals and warnings) and rendering.

Scope
- FaultCode: stable numeric identifiers for every user-facing issue, grouped by
  domain (load, parse, routing, warnings) so logs and docs stay searchable.
- CommandException: base error carrying a message, a read-only options mapping
  (code, title, hint and context such as flag/token/expected/got) and the
  CommandDescription reached when the fault surfaced.
- CommandSignal: alternate terminal outcomes that are not errors (help was
  requested, the loaded structure is not a runnable command).
- CommandWarning: soft issues (deprecated flags) emitted through warnings.
- trigger(): surface a fault (raise outside shell mode, render and exit inside).
- getdoc(): optional description lookup for a code from the host application.

Taxonomy
- LoadError     malformed declarations, unsupported types, duplicate paths or
                shorthands, non-aggregate roots. Fatal to that load.
- ParseError    unknown flags/shorthands, missing values, values rejected by
                their codec, missing positionals, deprecation rejections.
                Fatal to that execution; values applied before the failing
                token stay applied.
- RoutingError  raised by a __route__ implementation to reject a token.

Integration
- Value codecs raise ValueError; the tokenizer wraps it as InvalidValueError.
- Styles are read from __styles__ in __main__, codes from __codes__, docs from
  __docs__ and the program name from __prog__.
"""
import inspect
import sys
import warnings
from abc import ABC
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, UnsetType, coalesce

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the library (stable identifiers).

    grouping (by high-level domain)
    - load (101xx)
      • MALFORMED_DECLARATION, UNSUPPORTED_TYPE, DUPLICATE_PATH,
        DUPLICATE_SHORTHAND, NON_AGGREGATE
    - routing (111xx)
      • ROUTE_REJECTED, UNRECOGNIZED_COMMAND
    - flags (1111x)
      • BAD_FLAG_SYNTAX, UNKNOWN_FLAG, UNKNOWN_SHORTHAND, MISSING_VALUE,
        INVALID_VALUE
    - positionals (1112x)
      • MISSING_ARGUMENTS
    - delegated (1113x / 1213x)
      • DEPRECATED_FLAG, DEPRECATED_FLAG_WARNING
    """
    # --- load errors (10xxx) ---
    MALFORMED_DECLARATION   = 10101
    UNSUPPORTED_TYPE        = 10102
    DUPLICATE_PATH          = 10103
    DUPLICATE_SHORTHAND     = 10104
    NON_AGGREGATE           = 10105

    # --- routing errors (11xxx) ---
    ROUTE_REJECTED          = 11101
    UNRECOGNIZED_COMMAND    = 11102

    # --- flag errors (11xxx) ---
    BAD_FLAG_SYNTAX         = 11111
    UNKNOWN_FLAG            = 11112
    UNKNOWN_SHORTHAND       = 11113
    MISSING_VALUE           = 11114
    INVALID_VALUE           = 11115

    # --- positional errors (11xxx) ---
    MISSING_ARGUMENTS       = 11121

    # --- delegated errors (11xxx) ---
    DEPRECATED_FLAG         = 11131

    # --- warnings (12xxx) ---
    DEPRECATED_FLAG_WARNING = 12131

    def normalize(self):
        """
        label shown in fault headers.

        __codes__ in __main__ may map a FaultCode to a label (for example
        {FaultCode.UNKNOWN_FLAG: "E-FLAG"}); unmapped codes show their number.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, palette, title, body):
    main = __import__("__main__")
    options = fault.options
    colorful = options.get("colorful", True)
    styles = defaultdict(str, palette | getattr(main, "__styles__", {}))

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        return Text(str(fragment), styles[style])

    prog = coalesce(getattr(main, "__prog__", Unset), options.get("prog") or "command")
    header = Text.assemble(
        "[ ",
        text(prog, "prog-name"),
        " — ",
        text(options["code"].normalize(), "code"),
        " | ",
        text(options["title"].title(), title),
        " ]",
    )
    renders = [header, text(fault.message, body)]
    if options.get("hint"):
        renders.append(Text.assemble(text(" → ", "hint-arrow"), text(options["hint"], "hint")))
    if docs := options.get("docs") or getdoc(options["code"]):
        renders.append(text(docs, "docs"))

    if options.get("fancy"):
        return Panel(Group(*renders[1:]), title=header, title_align="left")
    return Group(*renders)


class CommandException(Exception):
    """
    Base class for every structargs error.

    Subclasses declare __defaults__ (at least code and title); options given at
    construction override them. The engine fills description with the
    CommandDescription reached when the fault surfaced.
    """
    __defaults__ = {"code": FaultCode.INVALID_VALUE, "title": "command error"}

    description = None

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | UnsetType)
        super().__init__(coalesce(message, ""))
        self.message = message
        self.options = MappingProxyType(type(self).__defaults__ | options)

    def __str__(self):
        return coalesce(self.message, self.options["title"])

    def __rich__(self):
        return _render(self, {
            # header: program name, code and title
            "prog-name": "bold #F5F5F5",
            "code": "bold #36C5F0",
            "error-title": "bold #EF4444",

            "error-message": "#D4D4D8",
            "hint-arrow": "#22C55E dim",
            "hint": "italic #22C55E",
            "docs": "#737373",
        }, "error-title", "error-message")

    def __trigger__(self) -> None:
        if not self.options.get("shell"):
            raise self
        console.print(self)
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        replaced = type(self)(self.message, **{**self.options, **overrides})
        replaced.description = self.description
        replaced.__cause__ = self.__cause__
        return replaced


class LoadError(CommandException):
    __defaults__ = {"code": FaultCode.MALFORMED_DECLARATION, "title": "load error"}


class MalformedDeclarationError(LoadError):
    __defaults__ = {"code": FaultCode.MALFORMED_DECLARATION, "title": "malformed declaration"}


class UnsupportedTypeError(LoadError):
    __defaults__ = {"code": FaultCode.UNSUPPORTED_TYPE, "title": "unsupported type"}


class DuplicatePathError(LoadError):
    __defaults__ = {"code": FaultCode.DUPLICATE_PATH, "title": "duplicate path"}


class DuplicateShorthandError(LoadError):
    __defaults__ = {"code": FaultCode.DUPLICATE_SHORTHAND, "title": "duplicate shorthand"}


class NonAggregateError(LoadError):
    __defaults__ = {"code": FaultCode.NON_AGGREGATE, "title": "not a structure"}


class ParseError(CommandException):
    __defaults__ = {"code": FaultCode.INVALID_VALUE, "title": "parse error"}


class BadFlagSyntaxError(ParseError):
    __defaults__ = {"code": FaultCode.BAD_FLAG_SYNTAX, "title": "bad flag syntax"}


class UnknownFlagError(ParseError):
    __defaults__ = {"code": FaultCode.UNKNOWN_FLAG, "title": "unknown flag"}


class UnknownShorthandError(ParseError):
    __defaults__ = {"code": FaultCode.UNKNOWN_SHORTHAND, "title": "unknown shorthand"}


class MissingValueError(ParseError):
    __defaults__ = {"code": FaultCode.MISSING_VALUE, "title": "missing value"}


class InvalidValueError(ParseError):
    __defaults__ = {"code": FaultCode.INVALID_VALUE, "title": "invalid value"}


class MissingArgumentsError(ParseError):
    __defaults__ = {"code": FaultCode.MISSING_ARGUMENTS, "title": "missing arguments"}


class DeprecatedFlagError(ParseError):
    __defaults__ = {"code": FaultCode.DEPRECATED_FLAG, "title": "deprecated flag"}


class RoutingError(CommandException):
    __defaults__ = {"code": FaultCode.ROUTE_REJECTED, "title": "unknown command"}


class CommandSignal(Exception):
    """
    Alternate terminal outcome of an execution, not an error.

    Carries the CommandDescription reached so callers can print its usage.
    """

    def __init__(self, description=None, /):
        super().__init__(description)
        self.description = description


class HelpSignal(CommandSignal):
    """Help was requested (--help, -h or the bare word help)."""


class UnrecognizedCommand(CommandSignal):
    """The reached structure is neither runnable nor routed further."""


class CommandWarning(ABC, Warning):
    __defaults__ = {"code": FaultCode.DEPRECATED_FLAG_WARNING, "title": "warning"}

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | UnsetType)
        super().__init__(coalesce(message, ""))
        self.message = message
        self.options = MappingProxyType(type(self).__defaults__ | options)

    def __str__(self):
        return coalesce(self.message, self.options["title"])

    def __rich__(self):
        return _render(self, {
            # same layout, amber code
            "prog-name": "bold #F5F5F5",
            "code": "bold #F59E0B",
            "warning-title": "bold #F97316",

            "warning-message": "#D4D4D8",
            "hint-arrow": "#22C55E dim",
            "hint": "italic #22C55E",
            "docs": "#737373",
        }, "warning-title", "warning-message")

    def __trigger__(self) -> None:
        if not self.options.get("shell"):
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class DeprecatedFlagWarning(CommandWarning):
    __defaults__ = {"code": FaultCode.DEPRECATED_FLAG_WARNING, "title": "deprecated flag"}


def trigger(fault, /, **options):
    """
    raise, warn or print a fault after merging options into a copy of it.

    invoke() routes every CommandException and every deprecation warning
    through here with its shell, fancy, colorful and prog settings; callers
    may add hint or docs. The fault passed in is left untouched.

    Raises TypeError for objects without __trigger__ and __replace__.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


def getdoc(code, /):
    """
    documentation line for code from __docs__ in __main__, or None.

    Rendered under the message of every fault carrying that code, unless the
    fault was triggered with docs=... already.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "CommandException",
    "LoadError",
    "MalformedDeclarationError",
    "UnsupportedTypeError",
    "DuplicatePathError",
    "DuplicateShorthandError",
    "NonAggregateError",
    "ParseError",
    "BadFlagSyntaxError",
    "UnknownFlagError",
    "UnknownShorthandError",
    "MissingValueError",
    "InvalidValueError",
    "MissingArgumentsError",
    "DeprecatedFlagError",
    "RoutingError",
    "CommandSignal",
    "HelpSignal",
    "UnrecognizedCommand",
    "CommandWarning",
    "DeprecatedFlagWarning",
    "FaultCode",
    "trigger",
    "getdoc",
)
