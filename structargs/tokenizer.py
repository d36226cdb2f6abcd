"""
structargs tokenizer (flag scanning over a flat argument list).

Scope
- parse_args() consumes long (--name, --name=value, --name value) and short
  (-x, -xvalue, -x=value, -x value, -abc) flags and returns every token that is
  not a flag, in order.
- Flags are matched by bisection over two views supplied by the caller:
  PrefixedFlags sorted by path and PrefixedFlags sorted by shorthand. Sorting
  is a precondition and is not checked here.
- Each matched flag is handed to apply(prefixed, value); whatever apply raises
  propagates unchanged, and flags applied before the failing token stay
  applied.

Rules
- "--" stops flag scanning; every token after it is positional.
- "-", "" and tokens not starting with "-" are positional; scanning continues
  after them.
- A flag with an implicit value (booleans) never consumes the next token;
  --flag=value and -f=value still override it.
- An unmatched --help or -h raises HelpSignal. A flag named help or with
  shorthand h shadows this.
"""
from bisect import bisect_left
from collections import deque

from .faults import (
    BadFlagSyntaxError,
    HelpSignal,
    MissingValueError,
    UnknownFlagError,
    UnknownShorthandError,
)


def _path(prefixed):
    return prefixed.path


def _shorthand(prefixed):
    return prefixed.shorthand


def parse_args(longs, shorts, args, apply, /):
    """
    Scan args for flags and return the remaining (positional) tokens.

    Parameters
    - longs: PrefixedFlags sorted by path.
    - shorts: PrefixedFlags with a shorthand, sorted by shorthand.
    - args: iterable of str tokens.
    - apply: callable(prefixed, value) binding one value.
    """
    args = deque(args)
    remaining = []
    while args:
        token = args.popleft()
        if len(token) < 2 or token[0] != "-":
            remaining.append(token)
            continue
        if token == "--":
            remaining.extend(args)
            break
        if token[1] == "-":
            parse_long_arg(longs, token, args, apply)
        else:
            parse_short_arg(shorts, token, args, apply)
    return remaining


def parse_long_arg(flags, token, args, apply, /):
    """
    Parse one --name[=value] token, taking the value from args when needed.
    """
    name = token[2:]
    if not name or name[0] in "-=":
        raise BadFlagSyntaxError(f"bad flag syntax: {token}", token=token)
    name, assigned, value = name.partition("=")

    index = bisect_left(flags, name, key=_path)
    if index == len(flags) or flags[index].path != name:
        if name == "help":
            raise HelpSignal()
        raise UnknownFlagError(
            f"unrecognized flag: {name}",
            flag=name,
            token=token,
            hint="run with --help to list the available flags",
        )

    prefixed = flags[index]
    if assigned:
        pass
    elif prefixed.implicit is not None:
        value = prefixed.implicit
    elif args:
        value = args.popleft()
    else:
        raise MissingValueError(f"flag needs an argument: {token}", flag=name, token=token)
    apply(prefixed, value)


def parse_short_arg(flags, token, args, apply, /):
    """
    Parse a run of shorthand letters (-abc, -ovalue, -o=value, -o value).
    """
    letters = token[1:]
    while letters:
        letters = _parse_single_short_arg(flags, letters, token, args, apply)


def _parse_single_short_arg(flags, letters, token, args, apply):
    letter, rest = letters[0], letters[1:]

    index = bisect_left(flags, letter, key=_shorthand)
    if index == len(flags) or flags[index].shorthand != letter:
        if letter == "h":
            raise HelpSignal()
        raise UnknownShorthandError(
            f"unknown shorthand flag: {letter!r} in {token}",
            flag=letter,
            token=token,
            hint="run with --help to list the available flags",
        )

    prefixed = flags[index]
    if rest.startswith("="):
        value, rest = rest[1:], ""
    elif prefixed.implicit is not None:
        value = prefixed.implicit
    elif rest:
        value, rest = rest, ""
    elif args:
        value = args.popleft()
    else:
        raise MissingValueError(f"flag needs an argument: {letter!r} in {token}", flag=letter, token=token)
    apply(prefixed, value)
    return rest


__all__ = (
    "parse_args",
    "parse_long_arg",
    "parse_short_arg",
)
