from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from selection_store import SelectionSnapshot, SelectionStore
from wizard_log import get_logger, log_event

logger = get_logger(__name__)


@dataclass(frozen=True)
class UnmetRequirement:
    key: str
    message: str


Validator = Callable[[SelectionSnapshot], Sequence[UnmetRequirement]]


@dataclass(frozen=True)
class StepSpec:
    key: str
    label: str
    required_slots: Tuple[str, ...] = ()
    required_fields: Tuple[str, ...] = ()
    custom_validator: Optional[Validator] = None


class StepValidationError(ValueError):
    def __init__(self, step_key: str, unmet: Sequence[UnmetRequirement]):
        self.step_key = step_key
        self.unmet: Tuple[UnmetRequirement, ...] = tuple(unmet)
        super().__init__(f"Step {step_key!r} is incomplete: " + "; ".join(u.message for u in self.unmet))

    @property
    def keys(self) -> Tuple[str, ...]:
        return tuple(u.key for u in self.unmet)


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return not value
    return False


def check_step(step: StepSpec, snapshot: SelectionSnapshot, labels: Optional[dict] = None) -> Tuple[UnmetRequirement, ...]:
    """
    Evaluate one step's requirements against a snapshot.

    Required slots come first (in declaration order), then required fields, then whatever
    the custom validator reports.
    """
    labels = labels or {}
    unmet: List[UnmetRequirement] = []
    for slot in step.required_slots:
        if not snapshot.is_filled(slot):
            unmet.append(UnmetRequirement(slot, f"Please select {labels.get(slot, slot).lower()}."))
    for name in step.required_fields:
        if _is_blank(snapshot.field_value(name)):
            unmet.append(UnmetRequirement(name, f"{labels.get(name, name)} is required."))
    if step.custom_validator is not None:
        unmet.extend(step.custom_validator(snapshot))
    return tuple(unmet)


class StepController:
    """
    Strictly linear step state machine over a selection store.

    Index runs 0..n-1; advancing from the last step enters the virtual `complete` state,
    from which only `reset()` leaves. Entering `complete` seals the store.
    """

    def __init__(self, steps: Sequence[StepSpec], store: SelectionStore, *, labels: Optional[dict] = None):
        if not steps:
            raise ValueError("A wizard needs at least one step")
        keys = [s.key for s in steps]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate step keys: {keys}")
        for step in steps:
            for slot in step.required_slots:
                if store.catalog.slot(slot) is None:
                    raise ValueError(f"Step {step.key!r} requires unknown slot {slot!r}")
        self.steps: Tuple[StepSpec, ...] = tuple(steps)
        self.store = store
        self._labels = {s.name: s.label for s in store.catalog.slots}
        self._labels.update(labels or {})
        self._index = 0
        self._complete = False

    @property
    def index(self) -> int:
        return self._index

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def current_step(self) -> Optional[StepSpec]:
        if self._complete:
            return None
        return self.steps[self._index]

    @property
    def progress(self) -> float:
        if self._complete:
            return 1.0
        return self._index / float(len(self.steps))

    def validate_current(self) -> Tuple[UnmetRequirement, ...]:
        step = self.current_step
        if step is None:
            return ()
        return check_step(step, self.store.get_snapshot(), self._labels)

    def advance(self) -> bool:
        """
        Move forward one step, or into `complete` from the last step.

        Raises StepValidationError (state unchanged) when the current step is unsatisfied.
        Returns False when already complete.
        """
        step = self.current_step
        if step is None:
            logger.debug("advance ignored: wizard already complete")
            return False
        unmet = check_step(step, self.store.get_snapshot(), self._labels)
        if unmet:
            logger.info("Step %s blocked: %s", step.key, [u.key for u in unmet])
            raise StepValidationError(step.key, unmet)

        old_index = self._index
        if self._index == len(self.steps) - 1:
            self._complete = True
            self.store.seal()
            logger.info("Step %s passed; wizard complete", step.key)
        else:
            self._index += 1
            logger.info("Step %s passed; now at step %d", step.key, self._index)
        log_event(
            location="step_controller.py:advance",
            message="advance",
            data={"from": old_index, "to": self._index, "complete": self._complete},
        )
        return True

    def retreat(self) -> bool:
        if self._complete or self._index == 0:
            logger.debug("retreat ignored at index %d (complete=%s)", self._index, self._complete)
            return False
        self._index -= 1
        log_event(
            location="step_controller.py:retreat",
            message="retreat",
            data={"to": self._index},
        )
        return True

    def reset(self, field_defaults: Optional[Mapping[str, object]] = None) -> None:
        self._index = 0
        self._complete = False
        self.store.reset(field_defaults)
        log_event(location="step_controller.py:reset", message="reset", data={})
