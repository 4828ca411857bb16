from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from selection_store import Catalog, OptionSpec, SelectionSnapshot, SlotSpec


class CatalogIntegrityError(ValueError):
    pass


Predicate = Callable[[SelectionSnapshot, Catalog], bool]


@dataclass(frozen=True)
class ConditionalCharge:
    """
    Cost and/or time added when a combination of selections holds.

    Evaluated after the per-option sums; never attributable to a single option.
    """

    code: str
    description: str
    predicate: Predicate
    amount: float = 0
    duration: float = 0
    group: str = "charges"


class MetricTransform(str, Enum):
    ADDITIVE = "additive"
    REDUCTION = "reduction"
    POWER_DAMPENING = "power_dampening"


@dataclass(frozen=True)
class MetricRule:
    """
    One simulated metric derived from a baseline and a summed effect.

    ADDITIVE:        baseline + total
    REDUCTION:       baseline - total
    POWER_DAMPENING: baseline * (1 - total / scale), only when total > 0

    `floor` / `ceiling` are the only bounds applied; a metric without them is unbounded.
    Bounds are applied before rounding to `precision` decimals.
    """

    name: str
    label: str
    baseline: float
    effect: str
    transform: MetricTransform
    unit: str = ""
    scale: float = 200.0
    floor: Optional[float] = None
    ceiling: Optional[float] = None
    precision: int = 2
    # True when a lower value is the better result (times, distances)
    lower_is_better: bool = False


@dataclass(frozen=True)
class FinancingTerms:
    months: int = 24
    annual_rate: float = 0.10


@dataclass(frozen=True)
class DerivationRules:
    charges: Tuple[ConditionalCharge, ...] = ()
    metrics: Tuple[MetricRule, ...] = ()
    financing: Optional[FinancingTerms] = None


@dataclass(frozen=True)
class LineItem:
    code: str
    description: str
    amount: float
    duration: float
    group: str


@dataclass(frozen=True)
class DerivedSnapshot:
    total_cost: float
    total_duration: float
    line_items: Tuple[LineItem, ...]
    subtotals: Mapping[str, float]
    effects: Mapping[str, float]
    metrics: Mapping[str, float]
    baseline_metrics: Mapping[str, float]
    revision: int = field(default=0, compare=False)

    def metric_delta(self, name: str) -> float:
        return self.metrics.get(name, 0.0) - self.baseline_metrics.get(name, 0.0)

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_cost": self.total_cost,
            "total_duration": self.total_duration,
            "line_items": [
                {
                    "code": li.code,
                    "description": li.description,
                    "amount": li.amount,
                    "duration": li.duration,
                    "group": li.group,
                }
                for li in self.line_items
            ],
            "subtotals": dict(self.subtotals),
            "effects": dict(self.effects),
            "metrics": dict(self.metrics),
            "baseline_metrics": dict(self.baseline_metrics),
        }


# region predicates

def selected(slot: str) -> Predicate:
    def _pred(snapshot: SelectionSnapshot, catalog: Catalog) -> bool:
        return snapshot.is_filled(slot)

    return _pred


def option_attribute(slot: str, name: str, value: object = True) -> Predicate:
    """True when any chosen option of `slot` carries attribute `name` == `value`."""

    def _pred(snapshot: SelectionSnapshot, catalog: Catalog) -> bool:
        spec = catalog.slot(slot)
        if spec is None:
            raise CatalogIntegrityError(f"Charge predicate references unknown slot {slot!r}")
        for option_id in snapshot.selected(slot):
            opt = spec.option(option_id)
            if opt is None:
                raise CatalogIntegrityError(f"Selected option {option_id!r} missing from slot {slot!r}")
            if opt.attr(name) == value:
                return True
        return False

    return _pred


def all_of(*preds: Predicate) -> Predicate:
    def _pred(snapshot: SelectionSnapshot, catalog: Catalog) -> bool:
        return all(p(snapshot, catalog) for p in preds)

    return _pred


def any_of(*preds: Predicate) -> Predicate:
    def _pred(snapshot: SelectionSnapshot, catalog: Catalog) -> bool:
        return any(p(snapshot, catalog) for p in preds)

    return _pred


# endregion predicates


def derive(snapshot: SelectionSnapshot, catalog: Catalog, rules: DerivationRules = DerivationRules()) -> DerivedSnapshot:
    """
    Recompute every derived output from a selection snapshot. Pure; no caching.
    """
    line_items: List[LineItem] = []
    effects: Dict[str, float] = {}

    for slot_name, option_ids in snapshot.slots.items():
        if not option_ids:
            continue
        spec = catalog.slot(slot_name)
        if spec is None:
            raise CatalogIntegrityError(f"Selection references unknown slot {slot_name!r}")
        for option_id in option_ids:
            opt = spec.option(option_id)
            if opt is None:
                raise CatalogIntegrityError(f"Selected option {option_id!r} missing from slot {slot_name!r}")
            line_items.append(
                LineItem(
                    code=f"{spec.name}:{opt.id}",
                    description=f"{spec.label}: {opt.label}",
                    amount=_resolve_price(spec, opt, snapshot),
                    duration=_resolve_duration(spec, opt, snapshot),
                    group=spec.group,
                )
            )
            for effect, magnitude in opt.effects.items():
                effects[effect] = effects.get(effect, 0.0) + float(magnitude)

    for charge in rules.charges:
        if charge.predicate(snapshot, catalog):
            line_items.append(
                LineItem(
                    code=charge.code,
                    description=charge.description,
                    amount=charge.amount,
                    duration=charge.duration,
                    group=charge.group,
                )
            )

    subtotals: Dict[str, float] = {}
    for li in line_items:
        subtotals[li.group] = subtotals.get(li.group, 0) + li.amount

    metrics: Dict[str, float] = {}
    baselines: Dict[str, float] = {}
    for rule in rules.metrics:
        baselines[rule.name] = rule.baseline
        metrics[rule.name] = apply_metric(rule, effects.get(rule.effect, 0.0))

    return DerivedSnapshot(
        total_cost=sum(li.amount for li in line_items),
        total_duration=sum(li.duration for li in line_items),
        line_items=tuple(line_items),
        subtotals=MappingProxyType(subtotals),
        effects=MappingProxyType(effects),
        metrics=MappingProxyType(metrics),
        baseline_metrics=MappingProxyType(baselines),
        revision=snapshot.revision,
    )


def apply_metric(rule: MetricRule, total: float) -> float:
    value = float(rule.baseline)
    if rule.transform == MetricTransform.ADDITIVE:
        value += total
    elif rule.transform == MetricTransform.REDUCTION:
        value -= total
    elif rule.transform == MetricTransform.POWER_DAMPENING:
        if total > 0:
            value *= 1 - (total / rule.scale)
    else:
        raise ValueError(f"Unsupported metric transform: {rule.transform!r}")

    if rule.floor is not None:
        value = max(value, rule.floor)
    if rule.ceiling is not None:
        value = min(value, rule.ceiling)
    return round(value, rule.precision) if rule.precision > 0 else float(round(value))


def monthly_installment(total: float, terms: FinancingTerms) -> int:
    """
    Standard amortizing-loan installment: P * r * (1 + r)^n / ((1 + r)^n - 1), r = annual / 12.
    """
    if terms.months <= 0:
        raise ValueError(f"Financing term must be a positive number of months (got {terms.months!r})")
    if total <= 0:
        return 0
    r = terms.annual_rate / 12.0
    n = terms.months
    if r == 0:
        return int(round(total / n))
    growth = math.pow(1 + r, n)
    return int(round(total * r * growth / (growth - 1)))


def working_days(hours: float, hours_per_day: float = 8.0) -> int:
    if hours <= 0:
        return 0
    return int(math.ceil(hours / hours_per_day))


def _resolve_price(spec: SlotSpec, opt: OptionSpec, snapshot: SelectionSnapshot) -> float:
    if spec.price_resolver is not None:
        return spec.price_resolver(opt, snapshot)
    return opt.price


def _resolve_duration(spec: SlotSpec, opt: OptionSpec, snapshot: SelectionSnapshot) -> float:
    if spec.duration_resolver is not None:
        return spec.duration_resolver(opt, snapshot)
    return opt.duration
