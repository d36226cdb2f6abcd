"""
structargs flags (the loaded flag tree).

Scope
- Flag: one bindable unit (a named flag or a positional slot) wrapping the
  Value bound to exactly one field of the loaded structure.
- FlagGroup: named or root collection of flags and nested groups; group names
  compose into dotted paths.
- PrefixedFlag: a Flag paired with its dotted path, the unit the tokenizer
  searches and the engine tracks.

Notes
- The tree is built once per load and never restructured by execution; only
  the bound field values change.
- Flag.default is the rendering of the field at bind time.
"""
from .utils import ModelType, Unset, coalesce


class Flag(metaclass=ModelType):
    """
    One bindable option or positional argument.

    Properties
    - value: the bound Value (__parse__/__str__, optional __typename__ and
      __implicit__)
    - name, shorthand: flag name and optional one-letter shorthand
    - positional, required: positional slot discriminators
    - help, default, deprecated, hidden: usage metadata
    """

    __introspectable__ = (
        "value",
        "name",
        "shorthand",
        "positional",
        "required",
        "help",
        "default",
        "deprecated",
        "hidden",
    )
    __displayable__ = (
        "name",
        "shorthand",
        "positional",
        "required",
        "default",
    )

    def __new__(
            cls,
            value,
            name,
            /,
            *,
            shorthand=None,
            positional=False,
            required=False,
            help=Unset,
            deprecated=Unset,
            hidden=False,
    ):
        if not callable(getattr(value, "__parse__", None)):
            raise TypeError(f"{cls.__typename__} 'value' must implement __parse__")
        if not isinstance(name, str) or not name:
            raise TypeError(f"{cls.__typename__} 'name' must be a non-empty string")
        if shorthand is not None and (not isinstance(shorthand, str) or len(shorthand) != 1):
            raise TypeError(f"{cls.__typename__} 'shorthand' must be a single character")
        if required and not positional:
            raise ValueError(f"{cls.__typename__} only positional slots can be required")
        if not isinstance(help := coalesce(help, ""), str):
            raise TypeError(f"{cls.__typename__} 'help' must be a string")
        if not isinstance(deprecated := coalesce(deprecated), str | None):
            raise TypeError(f"{cls.__typename__} 'deprecated' must be a string")

        self = super().__new__(cls)
        self._value = value
        self._name = name
        self._shorthand = shorthand
        self._positional = bool(positional)
        self._required = bool(required)
        self._help = help
        self._default = str(value)
        self._deprecated = deprecated or None
        self._hidden = bool(hidden)
        return self

    @property
    def typename(self):
        return getattr(self._value, "__typename__", None)

    @property
    def implicit(self):
        return getattr(self._value, "__implicit__", None)

    def apply(self, text, /):
        """Parse text into the bound field. Codec errors propagate as ValueError."""
        self._value.__parse__(text)


class FlagGroup(metaclass=ModelType):
    """
    Named (or root, name None) collection of flags and nested groups.

    help is either a string or a zero-argument callable returning one (a
    structure's __help__).
    """

    __introspectable__ = (
        "name",
        "flags",
        "groups",
    )

    def __new__(cls, name=None, /, *, help=None):
        if name is not None and (not isinstance(name, str) or not name):
            raise TypeError(f"{cls.__typename__} 'name' must be a non-empty string")
        if help is not None and not isinstance(help, str) and not callable(help):
            raise TypeError(f"{cls.__typename__} 'help' must be a string or a callable")

        self = super().__new__(cls)
        self._name = name
        self._help = help
        self._flags = []
        self._groups = []
        return self

    @property
    def help(self):
        if callable(self._help):
            return self._help() or ""
        return self._help or ""

    def add(self, member, /):
        """Append a Flag or a nested FlagGroup (in declaration order)."""
        if isinstance(member, Flag):
            self._flags.append(member)
        elif isinstance(member, FlagGroup):
            self._groups.append(member)
        else:
            raise TypeError(f"{type(self).__typename__} members must be flags or flag groups")
        return member

    def walk(self, prefix=""):
        """
        Yield (path, group) depth-first, this group first.
        """
        if self._name is not None:
            prefix = f"{prefix}{self._name}."
        yield prefix.removesuffix("."), self
        for group in self._groups:
            yield from group.walk(prefix)

    def flatten(self, prefix=""):
        """
        Yield PrefixedFlag for every flag in the tree, depth-first.
        """
        for path, group in self.walk(prefix):
            base = f"{path}." if path else ""
            for flag in group._flags:
                yield PrefixedFlag(base + flag.name, flag)


class PrefixedFlag(metaclass=ModelType):
    """
    A Flag with its dotted path (group names joined with dots).
    """

    __introspectable__ = (
        "path",
        "flag",
    )

    def __new__(cls, path, flag, /):
        if not isinstance(path, str) or not path:
            raise TypeError(f"{cls.__typename__} 'path' must be a non-empty string")
        if not isinstance(flag, Flag):
            raise TypeError(f"{cls.__typename__} 'flag' must be a flag")

        self = super().__new__(cls)
        self._path = path
        self._flag = flag
        return self

    @property
    def shorthand(self):
        return self._flag.shorthand

    @property
    def implicit(self):
        return self._flag.implicit


__all__ = (
    "Flag",
    "FlagGroup",
    "PrefixedFlag",
)

# Remove the internal metaclass from the module namespace. Not part of the public API.
del ModelType
