"""Conflict-free identifiers for the code the synthesizer introduces."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Set

from .directive import Directive
from .signature import SignatureModel
from .utils import GenericParameterConflict

logger = logging.getLogger(__name__)

__all__ = ["InternalNames", "allocate_names", "fresh_name"]

DEFAULT_PREFIX = "_fnaop_"
MAX_ATTEMPTS = 1000


@dataclass(frozen=True)
class InternalNames:
    """Identifiers reserved for one synthesized declaration.

    Attributes:
        result: Slot holding the value of the original body.
        body: Inner function carrying the original body (inline weaving).
        original: Binding of the compiled original function (definition-time weaving).
        factory: Closure factory used when compiling the synthesized function.
        lookup: Global-name resolver for hook paths hidden by a parameter
            (definition-time weaving).
        hooks: Binding names for hooks given as callables, keyed by slot.
    """

    result: str
    body: str
    original: str
    factory: str
    lookup: str
    hooks: Dict[str, str] = field(default_factory=dict)

    def all(self) -> Set[str]:
        return {
            self.result,
            self.body,
            self.original,
            self.factory,
            self.lookup,
            *self.hooks.values(),
        }


def fresh_name(base: str, taken: Set[str]) -> str:
    """Return ``base`` or ``base_N``, whichever first is not in ``taken``.

    The chosen name is added to ``taken``.

    Raises:
        GenericParameterConflict: If no free name is found.
    """
    candidate = base
    for attempt in range(1, MAX_ATTEMPTS + 1):
        if candidate not in taken:
            taken.add(candidate)
            return candidate
        candidate = f"{base}_{attempt}"
    raise GenericParameterConflict(
        f"Cannot allocate an internal name from {base!r}: all candidates are taken",
        ["Rename identifiers starting with the internal prefix"],
        {"option": base},
    )


def allocate_names(
    model: SignatureModel,
    directive: Directive,
    prefix: str = DEFAULT_PREFIX,
    extra_reserved: Optional[Iterable[str]] = None,
) -> InternalNames:
    """Allocate every internal identifier for a declaration.

    Names are disjoint from every identifier written in the declaration and
    from the first segment of each hook path, so no user binding is shadowed.
    """
    taken: Set[str] = set(model.reserved_names)
    taken.update(ref.head for _, ref in directive.hooks() if ref.head is not None)
    taken.update(extra_reserved or ())

    try:
        names = InternalNames(
            result=fresh_name(f"{prefix}result", taken),
            body=fresh_name(f"{prefix}body", taken),
            original=fresh_name(f"{prefix}original", taken),
            factory=fresh_name(f"{prefix}factory", taken),
            lookup=fresh_name(f"{prefix}lookup", taken),
            hooks={
                slot: fresh_name(f"{prefix}{slot}", taken)
                for slot, ref in directive.hooks()
                if ref.target is not None
            },
        )
    except GenericParameterConflict as exc:
        raise exc.with_context(declaration=model.name) from None
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Internal names for %s: %s", model.name, sorted(names.all()))
    return names
