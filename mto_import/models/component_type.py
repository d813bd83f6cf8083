from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

"""Component type taxonomy and identity classes.

Each component type belongs to exactly one identity class:

- TAG: the commodity code is itself a globally unique tag (instruments,
  spools, field welds). Identity = code verbatim, one component per row.
- BULK: many physical units share one commodity code (valves, supports,
  fittings). Identity = code + zero-padded sequence, one component per unit.
"""

__all__ = [
    "IdentityClass",
    "ComponentTypeDef",
    "ComponentTaxonomy",
    "DEFAULT_COMPONENT_TYPES",
]


class IdentityClass(Enum):
    TAG = "tag"
    BULK = "bulk"


@dataclass(frozen=True)
class ComponentTypeDef:
    """A single canonical component type."""
    name: str  # canonical casing, e.g. "Valve"
    identity_class: IdentityClass

    @property
    def db_value(self) -> str:
        # components.component_type は小文字で保存
        return self.name.lower()


DEFAULT_COMPONENT_TYPES: dict[str, IdentityClass] = {
    "Valve": IdentityClass.BULK,
    "Instrument": IdentityClass.TAG,
    "Support": IdentityClass.BULK,
    "Pipe": IdentityClass.BULK,
    "Fitting": IdentityClass.BULK,
    "Flange": IdentityClass.BULK,
}


class ComponentTaxonomy:
    """Fixed enumerated set of component types with case-insensitive lookup."""

    def __init__(self, types: Iterable[ComponentTypeDef]) -> None:
        self._types: list[ComponentTypeDef] = list(types)
        self._by_key: dict[str, ComponentTypeDef] = {}
        for t in self._types:
            key = t.name.strip().lower()
            if key in self._by_key:
                raise ValueError(f"duplicate component type: {t.name}")
            self._by_key[key] = t

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, IdentityClass | str]) -> ComponentTaxonomy:
        return cls(
            ComponentTypeDef(name=name, identity_class=IdentityClass(ic) if isinstance(ic, str) else ic)
            for name, ic in mapping.items()
        )

    @classmethod
    def default(cls) -> ComponentTaxonomy:
        return cls.from_mapping(DEFAULT_COMPONENT_TYPES)

    def match(self, raw: str | None) -> ComponentTypeDef | None:
        """Return the canonical type for ``raw`` (case-insensitive) or None."""
        if raw is None:
            return None
        return self._by_key.get(raw.strip().lower())

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._types]

    def __contains__(self, raw: object) -> bool:
        return isinstance(raw, str) and self.match(raw) is not None

    def __iter__(self):
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)
