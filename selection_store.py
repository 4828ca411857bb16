from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple


class Cardinality(str, Enum):
    SINGLE = "single"
    MULTI = "multi"


class InvalidOptionError(ValueError):
    pass


class ResetAfterCompleteError(RuntimeError):
    pass


@dataclass(frozen=True)
class OptionSpec:
    id: str
    label: str
    price: float = 0
    duration: float = 0
    # effect name -> signed magnitude (e.g. "hp": 8, "braking": 5)
    effects: Mapping[str, float] = field(default_factory=dict)
    # compatibility tags (e.g. vehicle makes the part fits)
    tags: FrozenSet[str] = frozenset()
    attributes: Mapping[str, object] = field(default_factory=dict)

    def attr(self, name: str, default: object = None) -> object:
        return self.attributes.get(name, default)


# (option, snapshot) -> amount, for contributions that depend on other selections
Resolver = Callable[[OptionSpec, "SelectionSnapshot"], float]


@dataclass(frozen=True)
class SlotSpec:
    name: str
    label: str
    cardinality: Cardinality
    options: Tuple[OptionSpec, ...]
    group: str = "items"
    price_resolver: Optional[Resolver] = None
    duration_resolver: Optional[Resolver] = None

    def option(self, option_id: str) -> Optional[OptionSpec]:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    def option_ids(self) -> Tuple[str, ...]:
        return tuple(opt.id for opt in self.options)


@dataclass(frozen=True)
class Catalog:
    slots: Tuple[SlotSpec, ...]

    def __post_init__(self) -> None:
        seen = set()
        for slot in self.slots:
            if slot.name in seen:
                raise ValueError(f"Duplicate slot in catalog: {slot.name}")
            seen.add(slot.name)
            ids = slot.option_ids()
            if len(set(ids)) != len(ids):
                raise ValueError(f"Duplicate option ids in slot {slot.name}")

    def slot(self, name: str) -> Optional[SlotSpec]:
        for slot in self.slots:
            if slot.name == name:
                return slot
        return None

    def slot_names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.slots)


@dataclass(frozen=True)
class SelectionSnapshot:
    """
    Read-only view of a store at one revision.

    `slots` maps every slot name to a tuple of chosen option ids (empty when nothing is
    chosen). Multi-slot ids are kept in catalog order so two stores holding the same
    choices compare equal regardless of click order.
    """

    slots: Mapping[str, Tuple[str, ...]]
    fields: Mapping[str, object]
    revision: int = field(default=0, compare=False)

    def selected(self, slot: str) -> Tuple[str, ...]:
        return tuple(self.slots.get(slot, ()))

    def single(self, slot: str) -> Optional[str]:
        ids = self.slots.get(slot, ())
        return ids[0] if ids else None

    def is_filled(self, slot: str) -> bool:
        return bool(self.slots.get(slot))

    def field_value(self, name: str, default: object = None) -> object:
        return self.fields.get(name, default)

    def is_empty(self) -> bool:
        return not any(self.slots.values())

    def to_dict(self) -> Dict[str, object]:
        return {
            "slots": {name: list(ids) for name, ids in self.slots.items()},
            "fields": {name: _jsonable(v) for name, v in self.fields.items()},
        }


def _jsonable(value: object) -> object:
    if hasattr(value, "isoformat"):
        return value.isoformat()  # type: ignore[attr-defined]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return value


class SelectionStore:
    """
    Current value of every selectable slot plus free-form fields for one wizard session.

    The store is the single mutable resource of a session. Once sealed (the wizard reached
    Complete) it rejects every mutation until `reset()`.

    `slot_defaults` pre-selects options (slot name -> option ids) on construction and on
    every reset; ids are checked against the catalog like any other selection.
    """

    def __init__(
        self,
        catalog: Catalog,
        field_defaults: Optional[Mapping[str, object]] = None,
        slot_defaults: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self.catalog = catalog
        self._field_defaults: Dict[str, object] = dict(field_defaults or {})
        self._slot_defaults: Dict[str, Tuple[str, ...]] = {}
        for slot, ids in (slot_defaults or {}).items():
            spec = self._require_slot(slot, None)
            chosen = set(ids)
            for option_id in chosen:
                self._require_option(spec, option_id)
            if spec.cardinality == Cardinality.SINGLE and len(chosen) > 1:
                raise InvalidOptionError(f"Slot {slot!r} is single-select but has {len(chosen)} default options")
            self._slot_defaults[slot] = tuple(i for i in spec.option_ids() if i in chosen)
        self._slots: Dict[str, Tuple[str, ...]] = self._initial_slots()
        self._fields: Dict[str, object] = dict(self._field_defaults)
        self._revision = 0
        self._sealed = False

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def sealed(self) -> bool:
        return self._sealed

    def set_single(self, slot: str, option_id: Optional[str]) -> None:
        spec = self._require_slot(slot, Cardinality.SINGLE)
        self._guard_writable()
        if option_id is None:
            new_value: Tuple[str, ...] = ()
        else:
            self._require_option(spec, option_id)
            current = self._slots[slot]
            # Selecting the current choice again deselects it.
            new_value = () if current == (option_id,) else (option_id,)
        self._slots[slot] = new_value
        self._bump()

    def toggle_multi(self, slot: str, option_id: str) -> None:
        spec = self._require_slot(slot, Cardinality.MULTI)
        self._guard_writable()
        self._require_option(spec, option_id)
        chosen = set(self._slots[slot])
        if option_id in chosen:
            chosen.discard(option_id)
        else:
            chosen.add(option_id)
        self._slots[slot] = tuple(i for i in spec.option_ids() if i in chosen)
        self._bump()

    def set_field(self, name: str, value: object) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Field name must be a non-empty string")
        self._guard_writable()
        self._fields[name] = value
        self._bump()

    def get_snapshot(self) -> SelectionSnapshot:
        return SelectionSnapshot(
            slots=MappingProxyType(dict(self._slots)),
            fields=MappingProxyType(dict(self._fields)),
            revision=self._revision,
        )

    def available_options(self, slot: str, tag: Optional[str] = None) -> Tuple[OptionSpec, ...]:
        spec = self._require_slot(slot, None)
        if tag is None:
            return spec.options
        return tuple(opt for opt in spec.options if not opt.tags or tag in opt.tags)

    def seal(self) -> None:
        self._sealed = True

    def reset(self, field_defaults: Optional[Mapping[str, object]] = None) -> None:
        """
        Back to the construction-time state and unsealed. Passing `field_defaults` replaces
        the stored defaults first (dates computed from a fresh clock reading).
        """
        if field_defaults is not None:
            self._field_defaults = dict(field_defaults)
        self._slots = self._initial_slots()
        self._fields = dict(self._field_defaults)
        self._sealed = False
        self._bump()

    def _initial_slots(self) -> Dict[str, Tuple[str, ...]]:
        return {name: self._slot_defaults.get(name, ()) for name in self.catalog.slot_names()}

    def _guard_writable(self) -> None:
        if self._sealed:
            raise ResetAfterCompleteError(
                "Selections are locked once the wizard is complete; reset the wizard to change them."
            )

    def _require_slot(self, slot: str, cardinality: Optional[Cardinality]) -> SlotSpec:
        spec = self.catalog.slot(slot)
        if spec is None:
            raise InvalidOptionError(f"Unknown slot: {slot!r}")
        if cardinality is not None and spec.cardinality != cardinality:
            raise InvalidOptionError(
                f"Slot {slot!r} is {spec.cardinality.value}-select (cannot use a {cardinality.value} mutation)"
            )
        return spec

    @staticmethod
    def _require_option(spec: SlotSpec, option_id: str) -> OptionSpec:
        opt = spec.option(option_id)
        if opt is None:
            raise InvalidOptionError(f"Unknown option {option_id!r} for slot {spec.name!r}")
        return opt

    def _bump(self) -> None:
        self._revision += 1


def filled_slots(snapshot: SelectionSnapshot, names: Iterable[str]) -> Tuple[str, ...]:
    return tuple(n for n in names if snapshot.is_filled(n))
