"""
structargs utilities (shared helpers for the model objects)

Scope
- The sentinel, naming and read-only accessor helpers used by the flag tree,
  the declarations and the value registry.

Overview
- Unset
  • "No argument given", kept apart from None (a legitimate field value and a
    legitimate ask() default). Falsey and printed as "Unset".

- coalesce(value, default=None)
  • Unset becomes default; every other value, falsey or not, passes through.

- rename(callable, name) / @rename("name")
  • Gives generated codec functions a readable __name__ and __qualname__.

- mirror("attr")
  • Read-only property over self._attr; containers are handed out as copies
    so a description's flag lists cannot be edited from outside.

- ModelType
  • Metaclass of Declaration, Flag, FlagGroup, PrefixedFlag and
    CommandDescription.

Stability and contract
- Names not in __all__ are internal and may change without notice.

Quick examples
    >>> coalesce(Unset, "")
    ''
    >>> coalesce(False, True)
    False
"""
import builtins
import functools
import operator
import re
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Type of the Unset singleton. Cannot be subclassed.
    """

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()
"""
Sentinel for "not provided". Materialize with coalesce(value, default).
"""


def coalesce(object, default=None, /):
    """
    Return default when object is Unset, object otherwise.

        coalesce(help, "")           # ask() without help= renders as ""
        coalesce(deprecated)         # Unset reason becomes None
        coalesce(registry, default)  # explicit Registry wins
    """
    return default if object is Unset else object


def rename(*parameters):
    """
    Name a callable, directly or as a decorator.

    Forms
    - rename(callable, name) -> callable
    - rename(name) -> decorator
    """
    match parameters:
        case (callable, str() as name):
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError(f"rename() cannot rename {type(callable).__name__!r} objects") from None
            return callable
        case (str() as name,):
            def decorator(callable):
                return rename(callable, name)

            return rename(decorator, "rename")
        case (_, _) | (_,):
            raise TypeError("rename() name must be a string")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _immortalize(object):
    """
    Shallow copy of a container (list, dict or set); anything else as-is.

    Model objects inside the container stay shared with their owner.
    """
    if isinstance(object, Sequence) and not isinstance(object, (str, bytes, bytearray)):
        return list(object)
    elif isinstance(object, Mapping):
        return dict(object)
    elif isinstance(object, Set):
        return set(object)
    return object


def mirror(name, /):
    """
    Read-only property for the private attribute "_{name}".
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


class ModelType(type):
    """
    Metaclass for the read-only model objects.

    - __typename__ is the class name split on capitals and joined with
      hyphens (PrefixedFlag -> "prefixed-flag"), used in validation messages.
    - every name in __introspectable__ becomes a mirror() property.
    - __repr__/__rich_repr__ list __displayable__, or __introspectable__ when
      the class leaves __displayable__ Unset.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                attribute: mirror(attribute) for attribute in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({', '.join(map(functools.partial(operator.mod, '%s=%r'), self.__rich_repr__()))})"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for attribute in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield attribute, getattr(self, attribute)
        self.__rich_repr__ = __rich_repr__

        return self


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",

    # Types
    "UnsetType",
    "ModelType",

    # Constants
    "Unset",
)
