"""
structargs loader (structures into flag trees).

Scope
- Loader walks a dataclass instance and extends a CommandDescription with the
  flags, positional slots and groups its tagged fields declare, binding each
  one to its field through the Registry.

Walk, per loaded value (depth-first, declaration order)
1. capability detection: the first __invoke__, __route__ and __help__ found
   become the description's command, router and helper.
2. __default__() runs immediately, before the value's fields are visited, so
   an outer structure defaults first and a nested value's own __default__
   may override it later.
3. fields: "changed" tags register change tracking; "ask" tags are parsed and
   dispatched (ignore, inline, group, flag, positional). Untagged fields are
   skipped. Group and inline fields holding None are allocated first.

Mutation points
- None group/inline fields are replaced by a default-constructed instance.
- None fields of T | None flags are replaced by the zero value of T.
- __default__() is called on every loaded value that defines it.

Errors
- NonAggregateError: the loaded value (root, group or inline) is not a
  dataclass instance.
- MalformedDeclarationError, UnsupportedTypeError, DuplicatePathError,
  DuplicateShorthandError: raised as found; the load is abandoned.
"""
import dataclasses
import logging
from types import NoneType
from typing import get_args, get_type_hints

from .declarations import Declaration, Kind, tags
from .faults import NonAggregateError
from .flags import Flag, FlagGroup
from .utils import Unset, coalesce
from .values import Reference, registry as default_registry

logger = logging.getLogger(__name__)


def _aggregate(reference, hint):
    """Current value of a group/inline field, allocating a None one."""
    if (current := reference.get()) is not None:
        return current
    factory = next((arg for arg in get_args(hint) if arg is not NoneType), hint)
    if not (isinstance(factory, type) and dataclasses.is_dataclass(factory)):
        raise NonAggregateError(
            f"field {reference.attribute!r} is None and {factory!r} is not a dataclass",
            field=reference.attribute,
        )
    logger.debug("allocating %s for field %r", factory.__name__, reference.attribute)
    current = factory()
    reference.set(current)
    return current


class Loader:
    """
    One load pass into a CommandDescription.

    The description owns path/shorthand uniqueness; the loader only walks.
    """

    def __init__(self, description, /, *, registry=Unset):
        self._description = description
        self._registry = coalesce(registry, default_registry)

    def load(self, object, /):
        """Extend the description with object at its root group."""
        self._load(object, self._description.root, "")
        return self._description

    def _load(self, object, group, prefix):
        if not dataclasses.is_dataclass(object) or isinstance(object, type):
            raise NonAggregateError(
                f"cannot load {type(object).__name__!r}: expected a dataclass instance",
                hint="decorate the command structure with @dataclass and pass an instance",
            )
        logger.debug("loading %s at %r", type(object).__name__, prefix or "<root>")

        self._description._adopt(object)
        if callable(default := getattr(object, "__default__", None)):
            logger.debug("applying defaults of %s", type(object).__name__)
            default()

        hints = get_type_hints(type(object), include_extras=True)
        for field in dataclasses.fields(object):
            metadata = tags(field)
            reference = Reference(object, field.name)

            if metadata["changed"] is not None:
                self._description._track(metadata["changed"], reference)
            if metadata["ask"] is None:
                continue

            declaration = Declaration.parse(metadata["ask"])
            match declaration.kind:
                case Kind.IGNORE:
                    continue
                case Kind.INLINE:
                    self._load(_aggregate(reference, hints[field.name]), group, prefix)
                case Kind.GROUP:
                    value = _aggregate(reference, hints[field.name])
                    help = metadata["help"] or getattr(value, "__help__", None)
                    path = prefix + declaration.name
                    self._description._claim(path)
                    logger.debug("entering group %r", path)
                    self._load(value, group.add(FlagGroup(declaration.name, help=help or None)), path + ".")
                case _:
                    flag = Flag(
                        self._registry.bind(hints[field.name], reference),
                        declaration.name,
                        shorthand=declaration.shorthand,
                        positional=declaration.positional,
                        required=declaration.required,
                        help=metadata["help"],
                        deprecated=metadata["deprecated"],
                        hidden=metadata["hidden"],
                    )
                    self._description._bind(prefix + declaration.name, flag, group)


__all__ = (
    "Loader",
)
