from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from derivation_engine import DerivedSnapshot
from selection_store import SelectionSnapshot


class StaleDerivationError(ValueError):
    pass


class WizardNotCompleteError(RuntimeError):
    pass


@dataclass(frozen=True)
class Summary:
    wizard_key: str
    reference: str
    completed_at: datetime
    selections: SelectionSnapshot
    derived: DerivedSnapshot

    @property
    def total_cost(self) -> float:
        return self.derived.total_cost

    def to_dict(self) -> Dict[str, object]:
        return {
            "wizard": self.wizard_key,
            "reference": self.reference,
            "completed_at": self.completed_at.isoformat(),
            "selections": self.selections.to_dict(),
            "derived": self.derived.to_dict(),
        }


def reference_code(prefix: str, completed_at: datetime) -> str:
    """
    Deterministic reference for a completed wizard: {PREFIX}-{YYYYMMDDHHMMSS}.
    """
    return f"{prefix}-{completed_at.strftime('%Y%m%d%H%M%S')}"


def assemble(
    snapshot: SelectionSnapshot,
    derived: DerivedSnapshot,
    *,
    wizard_key: str,
    completed_at: datetime,
    reference_prefix: str = "WIZ",
) -> Summary:
    """
    Combine the final selections and their derived outputs into one immutable Summary.

    The derived snapshot must come from the same store revision as `snapshot`; a mismatch
    means the totals were computed from an older selection state.
    """
    if derived.revision != snapshot.revision:
        raise StaleDerivationError(
            f"Derived values are from revision {derived.revision}, selections are at revision {snapshot.revision}"
        )
    return Summary(
        wizard_key=wizard_key,
        reference=reference_code(reference_prefix, completed_at),
        completed_at=completed_at,
        selections=snapshot,
        derived=derived,
    )
