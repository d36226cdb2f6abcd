r"""
structargs declarations (field tag mini-language).

Scope
- Declaration.parse(text) turns the "ask" tag of a dataclass field into a
  typed Declaration. The grammar lives here so it can be tested on its own.
- ask(...) and changed(...) build dataclasses.field() objects carrying the
  tags the loader reads (ask, help, hidden, deprecated, changed).

Grammar (tokens separated by blanks)
- "-"        ignore the field
- "."        inline: promote the fields of the value into the current group
- ".name"    group: promote the fields of the value into a nested group
- "--name"   long flag
- "-x"       short flag (single letter or digit)
- "<name>"   required positional
- "[name]"   optional positional

- "-", "." and ".name" must stand alone.
- A long flag or a positional may be combined with one short flag
  ("--verbose -v", "<id> -i").
- A field declaring only a short flag takes the letter as its name.
- Names match r"(?!-)[\w-]+" (no dots: dots join group paths).

Examples
    >>> Declaration.parse("--addr -a")
    declaration(kind=<Kind.LONG: 'long'>, name='addr', shorthand='a')
    >>> Declaration.parse("[more]").required
    False
"""
import dataclasses
import re
from enum import Enum

from .faults import MalformedDeclarationError
from .utils import ModelType, Unset, coalesce

_NAME = re.compile(r"(?!-)[\w-]+")
_SHORTHAND = re.compile(r"[^\W_]")


class Kind(Enum):
    IGNORE = "ignore"
    INLINE = "inline"
    GROUP = "group"
    LONG = "long"
    SHORT = "short"
    REQUIRED = "required"
    OPTIONAL = "optional"


def _malformed(text, reason):
    return MalformedDeclarationError(
        f"malformed declaration {text!r}: {reason}",
        declaration=text,
        hint="use '-', '.', '.name', '--name', '-x', '<name>' or '[name]'",
    )


class Declaration(metaclass=ModelType):
    """
    Parsed binding declaration of one field.

    Properties
    - kind: Kind
    - name: str | None (None for IGNORE and INLINE)
    - shorthand: str | None
    """

    __introspectable__ = (
        "kind",
        "name",
        "shorthand",
    )

    def __new__(cls, kind, name=None, shorthand=None):
        if not isinstance(kind, Kind):
            raise TypeError(f"{cls.__typename__} 'kind' must be a kind")
        if kind in (Kind.IGNORE, Kind.INLINE):
            if name is not None or shorthand is not None:
                raise ValueError(f"{cls.__typename__} of kind {kind.value} cannot carry a name")
        elif not isinstance(name, str) or not _NAME.fullmatch(name):
            raise ValueError(f"{cls.__typename__} 'name' must be a valid flag name")
        if shorthand is not None and not (isinstance(shorthand, str) and _SHORTHAND.fullmatch(shorthand)):
            raise ValueError(f"{cls.__typename__} 'shorthand' must be a single letter or digit")
        if kind is Kind.GROUP and shorthand is not None:
            raise ValueError(f"{cls.__typename__} of kind group cannot carry a shorthand")

        self = super().__new__(cls)
        self._kind = kind
        self._name = name
        self._shorthand = shorthand
        return self

    @classmethod
    def parse(cls, text, /):
        """
        Parse an "ask" tag.

        Raises
        - MalformedDeclarationError: empty tag, unknown token shape, a
          standalone token combined with others, or conflicting names.
        """
        if not isinstance(text, str):
            raise _malformed(text, "declaration must be a string")
        tokens = text.split()
        if not tokens:
            raise _malformed(text, "declaration is empty")

        kind = name = shorthand = None
        for token in tokens:
            if token in ("-", ".") or (token.startswith(".") and _NAME.fullmatch(token[1:])):
                if len(tokens) > 1:
                    raise _malformed(text, f"{token!r} must stand alone")
                match token:
                    case "-":
                        return cls(Kind.IGNORE)
                    case ".":
                        return cls(Kind.INLINE)
                    case _:
                        return cls(Kind.GROUP, token[1:])

            if token.startswith("--"):
                current, candidate = Kind.LONG, token[2:]
            elif token.startswith("<") and token.endswith(">"):
                current, candidate = Kind.REQUIRED, token[1:-1]
            elif token.startswith("[") and token.endswith("]"):
                current, candidate = Kind.OPTIONAL, token[1:-1]
            elif token.startswith("-"):
                if not _SHORTHAND.fullmatch(token[1:]):
                    raise _malformed(text, f"shorthand {token!r} must be a single letter or digit")
                if shorthand is not None:
                    raise _malformed(text, "more than one shorthand")
                shorthand = token[1:]
                continue
            else:
                raise _malformed(text, f"unrecognized token {token!r}")

            if not _NAME.fullmatch(candidate):
                raise _malformed(text, f"invalid name {candidate!r}")
            if kind is not None:
                raise _malformed(text, "more than one name")
            kind, name = current, candidate

        if kind is None:
            kind, name = Kind.SHORT, shorthand
        return cls(kind, name, shorthand)

    @property
    def flag(self):
        """True when the field binds a Flag (named or positional)."""
        return self._kind in (Kind.LONG, Kind.SHORT, Kind.REQUIRED, Kind.OPTIONAL)

    @property
    def positional(self):
        return self._kind in (Kind.REQUIRED, Kind.OPTIONAL)

    @property
    def required(self):
        return self._kind is Kind.REQUIRED

    def __eq__(self, other):
        if not isinstance(other, Declaration):
            return NotImplemented
        return (self._kind, self._name, self._shorthand) == (other._kind, other._name, other._shorthand)

    def __hash__(self):
        return hash((self._kind, self._name, self._shorthand))


def ask(
        declaration,
        /,
        *,
        default=dataclasses.MISSING,
        default_factory=dataclasses.MISSING,
        help=Unset,
        hidden=False,
        deprecated=Unset,
        **options,
):
    """
    Dataclass field carrying an "ask" declaration and its companion tags.

    The declaration is validated when the structure is loaded, not here.
    Extra keyword options are forwarded to dataclasses.field().

        @dataclass
        class Connect:
            addr: str = ask("--addr -a", default="127.0.0.1", help="remote address")
    """
    metadata = dict(options.pop("metadata", None) or {})
    metadata["ask"] = declaration
    if help is not Unset:
        metadata["help"] = help
    if hidden:
        metadata["hidden"] = True
    if deprecated is not Unset:
        metadata["deprecated"] = deprecated
    return dataclasses.field(
        default=default,
        default_factory=default_factory,
        metadata=metadata,
        **options,
    )


def changed(path, /, *, default=False, **options):
    """
    Boolean dataclass field set to True when the flag at the dotted path is
    supplied.
    """
    if not isinstance(path, str) or not path:
        raise TypeError("changed() argument must be a non-empty string")
    metadata = dict(options.pop("metadata", None) or {})
    metadata["changed"] = path
    return dataclasses.field(default=default, metadata=metadata, **options)


def tags(field, /):
    """
    Read the tags of a dataclasses.Field.

    Returns a dict with ask (str | None), help (str), hidden (bool),
    deprecated (str | None) and changed (str | None).
    """
    metadata = field.metadata
    return {
        "ask": metadata.get("ask"),
        "help": coalesce(metadata.get("help", Unset), ""),
        "hidden": bool(metadata.get("hidden", False)),
        "deprecated": metadata.get("deprecated") or None,
        "changed": metadata.get("changed"),
    }


__all__ = (
    "Kind",
    "Declaration",
    "ask",
    "changed",
)

# Remove the internal metaclass from the module namespace. Not part of the public API.
del ModelType
