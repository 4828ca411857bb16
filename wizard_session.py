from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping, Optional, Tuple

from derivation_engine import DerivationRules, DerivedSnapshot, derive, monthly_installment
from selection_store import Catalog, SelectionSnapshot, SelectionStore
from step_controller import StepController, StepSpec, StepValidationError, UnmetRequirement
from summary_assembler import Summary, WizardNotCompleteError, assemble
from wizard_log import get_logger, log_event

logger = get_logger(__name__)

Clock = Callable[[], datetime]
Submitter = Callable[[Summary], object]


@dataclass(frozen=True)
class WizardDefinition:
    key: str
    title: str
    catalog: Catalog
    steps: Tuple[StepSpec, ...]
    rules: DerivationRules = DerivationRules()
    # clock reading -> default field values (e.g. "installation_date": today + 7 days)
    field_defaults: Callable[[datetime], Mapping[str, object]] = lambda now: {}
    # slot name -> option ids pre-selected on open and on reset
    slot_defaults: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    field_labels: Mapping[str, str] = field(default_factory=dict)
    reference_prefix: str = "WIZ"
    submit_path: str = ""


@dataclass(frozen=True)
class StepOutcome:
    ok: bool
    unmet: Tuple[UnmetRequirement, ...] = ()

    @property
    def messages(self) -> Tuple[str, ...]:
        return tuple(u.message for u in self.unmet)


class WizardSession:
    """
    One open wizard: selection store + step controller + derived values.

    Every mutation entry point recomputes the derived snapshot, so `derived` is never
    older than the store. `assemble()` re-derives again regardless.
    """

    def __init__(self, definition: WizardDefinition, *, clock: Optional[Clock] = None, submit: Optional[Submitter] = None):
        self.definition = definition
        self._clock: Clock = clock or datetime.now
        self._submit = submit
        self._defaults = dict(definition.field_defaults(self._clock()))
        self.store = SelectionStore(
            definition.catalog,
            field_defaults=self._defaults,
            slot_defaults=definition.slot_defaults,
        )
        self.controller = StepController(definition.steps, self.store, labels=dict(definition.field_labels))
        self._completed_at: Optional[datetime] = None
        self._derived = self._recompute()

    # region mutations

    def set_single(self, slot: str, option_id: Optional[str]) -> DerivedSnapshot:
        self.store.set_single(slot, option_id)
        return self._recompute()

    def toggle_multi(self, slot: str, option_id: str) -> DerivedSnapshot:
        self.store.toggle_multi(slot, option_id)
        return self._recompute()

    def set_field(self, name: str, value: object) -> DerivedSnapshot:
        self.store.set_field(name, value)
        return self._recompute()

    # endregion mutations

    @property
    def snapshot(self) -> SelectionSnapshot:
        return self.store.get_snapshot()

    @property
    def derived(self) -> DerivedSnapshot:
        if self._derived.revision != self.store.revision:
            self._derived = self._recompute()
        return self._derived

    @property
    def step_index(self) -> int:
        return self.controller.index

    @property
    def complete(self) -> bool:
        return self.controller.complete

    @property
    def can_submit(self) -> bool:
        return self._submit is not None

    def field_default(self, name: str) -> object:
        return self._defaults.get(name)

    def advance(self) -> bool:
        advanced = self.controller.advance()
        if advanced and self.controller.complete:
            self._completed_at = self._clock()
        return advanced

    def try_advance(self) -> StepOutcome:
        try:
            self.advance()
        except StepValidationError as exc:
            return StepOutcome(ok=False, unmet=exc.unmet)
        return StepOutcome(ok=True)

    def retreat(self) -> bool:
        return self.controller.retreat()

    def reset(self) -> None:
        # Defaults such as "today + 7 days" follow the clock at reset time.
        self._defaults = dict(self.definition.field_defaults(self._clock()))
        self.controller.reset(self._defaults)
        self._completed_at = None
        self._recompute()
        logger.info("Wizard %s reset", self.definition.key)

    def assemble(self) -> Summary:
        if not self.controller.complete or self._completed_at is None:
            raise WizardNotCompleteError(
                f"Wizard {self.definition.key!r} is at step {self.controller.index}; finish every step before confirming."
            )
        snapshot = self.store.get_snapshot()
        fresh = derive(snapshot, self.definition.catalog, self.definition.rules)
        summary = assemble(
            snapshot,
            fresh,
            wizard_key=self.definition.key,
            completed_at=self._completed_at,
            reference_prefix=self.definition.reference_prefix,
        )
        self._derived = fresh
        self.store.seal()
        log_event(
            location="wizard_session.py:assemble",
            message="summary assembled",
            data={"wizard": self.definition.key, "reference": summary.reference, "total": fresh.total_cost},
        )
        return summary

    def submit(self) -> object:
        """
        Assemble the Summary and hand it to the injected submit collaborator.
        """
        if self._submit is None:
            raise RuntimeError(f"No submit collaborator configured for wizard {self.definition.key!r}")
        summary = self.assemble()
        logger.info("Submitting %s (%s)", summary.reference, self.definition.key)
        return self._submit(summary)

    def monthly_installment(self) -> Optional[int]:
        terms = self.definition.rules.financing
        if terms is None:
            return None
        return monthly_installment(self.derived.total_cost, terms)

    def _recompute(self) -> DerivedSnapshot:
        self._derived = derive(self.store.get_snapshot(), self.definition.catalog, self.definition.rules)
        return self._derived
