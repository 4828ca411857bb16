from __future__ import annotations

import random
import unittest
from datetime import datetime

from derivation_engine import (
    CatalogIntegrityError,
    ConditionalCharge,
    DerivationRules,
    FinancingTerms,
    MetricRule,
    MetricTransform,
    all_of,
    any_of,
    apply_metric,
    derive,
    monthly_installment,
    option_attribute,
    selected,
    working_days,
)
from selection_store import Cardinality, Catalog, OptionSpec, SelectionSnapshot, SelectionStore, SlotSpec
from wizard_catalogs import WIZARD_BUILDERS, build_wizard

_NOW = datetime(2025, 3, 14, 10, 30, 0)


def _catalog() -> Catalog:
    return Catalog(
        slots=(
            SlotSpec(
                "intake",
                "Intake",
                Cardinality.SINGLE,
                (OptionSpec("intake1", "Cold Air Intake", price=15000, duration=1.5, effects={"hp": 8}),),
                group="parts",
            ),
            SlotSpec(
                "exhaust",
                "Exhaust",
                Cardinality.SINGLE,
                (OptionSpec("exhaust1", "Catback", price=45000, duration=3, effects={"hp": 10}),),
                group="parts",
            ),
            SlotSpec(
                "ecu",
                "ECU",
                Cardinality.SINGLE,
                (OptionSpec("ecu1", "Stage 1", price=25000, duration=2, effects={"hp": 20}),),
                group="parts",
            ),
            SlotSpec(
                "brakes",
                "Brakes",
                Cardinality.MULTI,
                (
                    OptionSpec("caliper", "Calipers", price=45000, effects={"braking": 5}),
                    OptionSpec("rotor", "Rotors", price=35000, effects={"braking": 3}),
                    OptionSpec("pad", "Pads", price=15000, effects={"braking": 4}),
                    OptionSpec("line", "Lines", price=12000, effects={"braking": 2}),
                ),
                group="parts",
            ),
            SlotSpec(
                "specialist",
                "Specialist",
                Cardinality.SINGLE,
                (
                    OptionSpec("dyno_shop", "Dyno Shop", attributes={"has_dyno": True}),
                    OptionSpec("garage", "Garage", attributes={"has_dyno": False}),
                ),
                group="labor",
            ),
        )
    )


_DYNO_RULES = DerivationRules(
    charges=(
        ConditionalCharge(
            code="DYNO",
            description="Dyno calibration",
            predicate=all_of(selected("ecu"), option_attribute("specialist", "has_dyno")),
            amount=15000,
            group="dyno",
        ),
        ConditionalCharge(
            code="DYNO_TIME",
            description="Dyno time",
            predicate=all_of(selected("ecu"), selected("specialist")),
            duration=2,
            group="labor",
        ),
    ),
    metrics=(
        MetricRule("acceleration", "0-100", 8.5, "hp", MetricTransform.POWER_DAMPENING, precision=1, lower_is_better=True),
        MetricRule("braking", "Braking", 42, "braking", MetricTransform.REDUCTION, floor=32, precision=0, lower_is_better=True),
    ),
)


class TestDerive(unittest.TestCase):
    def _store(self) -> SelectionStore:
        return SelectionStore(_catalog())

    def test_empty_selection_derives_zero(self) -> None:
        d = derive(self._store().get_snapshot(), _catalog(), _DYNO_RULES)
        self.assertEqual(d.total_cost, 0)
        self.assertEqual(d.total_duration, 0)
        self.assertEqual(d.line_items, ())
        self.assertEqual(d.metrics["acceleration"], 8.5)
        self.assertEqual(d.metrics["braking"], 42)

    def test_totals_sum_selected_options(self) -> None:
        store = self._store()
        store.set_single("intake", "intake1")
        store.set_single("exhaust", "exhaust1")
        d = derive(store.get_snapshot(), _catalog())
        self.assertEqual(d.total_cost, 60000)
        self.assertEqual(d.total_duration, 4.5)
        self.assertEqual(d.effects["hp"], 18)
        self.assertEqual([li.code for li in d.line_items], ["intake:intake1", "exhaust:exhaust1"])
        self.assertEqual(d.line_items[0].description, "Intake: Cold Air Intake")
        self.assertEqual(d.subtotals["parts"], 60000)

    def test_dyno_charge_needs_ecu_and_dyno_specialist(self) -> None:
        store = self._store()
        store.set_single("intake", "intake1")
        store.set_single("ecu", "ecu1")
        store.set_single("specialist", "garage")
        d = derive(store.get_snapshot(), _catalog(), _DYNO_RULES)
        self.assertNotIn("DYNO", [li.code for li in d.line_items])
        self.assertIn("DYNO_TIME", [li.code for li in d.line_items])
        self.assertEqual(d.total_cost, 40000)

        store.set_single("specialist", "dyno_shop")
        d = derive(store.get_snapshot(), _catalog(), _DYNO_RULES)
        self.assertEqual(d.total_cost, 15000 + 25000 + 15000)
        self.assertEqual(d.subtotals["dyno"], 15000)
        self.assertEqual(d.total_duration, 1.5 + 2 + 2)

    def test_intake_exhaust_plus_dyno_is_75000(self) -> None:
        # Dyno fee applies on top of the parts once the ECU and dyno shop are both chosen.
        catalog = Catalog(
            slots=_catalog().slots[:2]
            + (
                SlotSpec("ecu", "ECU", Cardinality.SINGLE, (OptionSpec("ecu0", "Flash", price=0),)),
                _catalog().slots[4],
            )
        )
        store = SelectionStore(catalog)
        store.set_single("intake", "intake1")
        store.set_single("exhaust", "exhaust1")
        self.assertEqual(derive(store.get_snapshot(), catalog, _DYNO_RULES).total_cost, 60000)
        store.set_single("ecu", "ecu0")
        store.set_single("specialist", "dyno_shop")
        self.assertEqual(derive(store.get_snapshot(), catalog, _DYNO_RULES).total_cost, 75000)

    def test_selecting_twice_removes_contribution(self) -> None:
        store = self._store()
        before = derive(store.get_snapshot(), _catalog(), _DYNO_RULES)
        store.set_single("exhaust", "exhaust1")
        store.set_single("exhaust", "exhaust1")
        after = derive(store.get_snapshot(), _catalog(), _DYNO_RULES)
        self.assertEqual(before, after)

    def test_braking_distance_is_floored(self) -> None:
        store = self._store()
        for opt in ("caliper", "rotor", "pad", "line"):
            store.toggle_multi("brakes", opt)
        d = derive(store.get_snapshot(), _catalog(), _DYNO_RULES)
        self.assertEqual(d.effects["braking"], 14)
        self.assertEqual(d.metrics["braking"], 32)
        self.assertEqual(d.metric_delta("braking"), -10)

    def test_power_dampening_uses_hp_total(self) -> None:
        store = self._store()
        store.set_single("intake", "intake1")
        store.set_single("exhaust", "exhaust1")
        store.set_single("ecu", "ecu1")
        d = derive(store.get_snapshot(), _catalog(), _DYNO_RULES)
        # 8.5 * (1 - 38 / 200) = 6.885
        self.assertEqual(d.metrics["acceleration"], 6.9)

    def test_unknown_selection_is_catalog_integrity_error(self) -> None:
        snap = SelectionSnapshot(slots={"turbo": ("t1",)}, fields={})
        with self.assertRaises(CatalogIntegrityError):
            derive(snap, _catalog())
        snap = SelectionSnapshot(slots={"intake": ("intake9",)}, fields={})
        with self.assertRaises(CatalogIntegrityError):
            derive(snap, _catalog())

    def test_derived_carries_revision_but_compares_without_it(self) -> None:
        store = self._store()
        store.set_single("intake", "intake1")
        d1 = derive(store.get_snapshot(), _catalog())
        store.set_single("intake", "intake1")
        store.set_single("intake", "intake1")
        d2 = derive(store.get_snapshot(), _catalog())
        self.assertEqual(d1.revision, 1)
        self.assertEqual(d2.revision, 3)
        self.assertEqual(d1, d2)

    def test_price_resolver_sees_other_selections(self) -> None:
        def per_day(opt: OptionSpec, snap: SelectionSnapshot) -> float:
            return opt.price * int(snap.field_value("days", 1) or 1)

        catalog = Catalog(
            slots=(
                SlotSpec(
                    "extras",
                    "Extras",
                    Cardinality.MULTI,
                    (OptionSpec("gps", "GPS", price=100), OptionSpec("seat", "Seat", price=200)),
                    price_resolver=per_day,
                ),
            )
        )
        store = SelectionStore(catalog, field_defaults={"days": 3})
        store.toggle_multi("extras", "gps")
        store.toggle_multi("extras", "seat")
        self.assertEqual(derive(store.get_snapshot(), catalog).total_cost, 900)

    def test_any_of(self) -> None:
        store = self._store()
        pred = any_of(selected("ecu"), selected("intake"))
        self.assertFalse(pred(store.get_snapshot(), _catalog()))
        store.set_single("intake", "intake1")
        self.assertTrue(pred(store.get_snapshot(), _catalog()))

    def test_option_attribute_unknown_slot_raises(self) -> None:
        pred = option_attribute("turbo", "has_dyno")
        with self.assertRaises(CatalogIntegrityError):
            pred(self._store().get_snapshot(), _catalog())


class TestMetricsAndFinancing(unittest.TestCase):
    def test_additive_metric_is_unbounded(self) -> None:
        rule = MetricRule("lateral_g", "Lateral G", 0.85, "lateral_g", MetricTransform.ADDITIVE, precision=2)
        self.assertEqual(apply_metric(rule, 0.15 + 0.08 + 0.10 + 0.05), 1.23)

    def test_power_dampening_ignores_non_positive_totals(self) -> None:
        rule = MetricRule("quarter", "Quarter", 16.2, "hp", MetricTransform.POWER_DAMPENING, precision=1)
        self.assertEqual(apply_metric(rule, 0), 16.2)
        self.assertEqual(apply_metric(rule, -10), 16.2)

    def test_ceiling_applies(self) -> None:
        rule = MetricRule("grip", "Grip", 1.0, "g", MetricTransform.ADDITIVE, ceiling=1.2)
        self.assertEqual(apply_metric(rule, 5), 1.2)

    def test_monthly_installment_24_months_10_percent(self) -> None:
        self.assertEqual(monthly_installment(100000, FinancingTerms(months=24, annual_rate=0.10)), 4614)

    def test_monthly_installment_zero_rate_and_zero_total(self) -> None:
        self.assertEqual(monthly_installment(24000, FinancingTerms(months=24, annual_rate=0.0)), 1000)
        self.assertEqual(monthly_installment(0, FinancingTerms()), 0)
        with self.assertRaises(ValueError):
            monthly_installment(1000, FinancingTerms(months=0))

    def test_working_days(self) -> None:
        self.assertEqual(working_days(0), 0)
        self.assertEqual(working_days(8), 1)
        self.assertEqual(working_days(8.5), 2)


class TestDeriveOverWizardCatalogs(unittest.TestCase):
    def test_any_sequence_of_catalog_ids_derives(self) -> None:
        """
        Random single/multi toggles (repeats included, so choices get deselected) over every
        option of every wizard catalog must always derive cleanly.
        """
        rng = random.Random(20250314)
        for key in WIZARD_BUILDERS:
            definition = build_wizard(key, lambda: _NOW)
            catalog = definition.catalog
            store = SelectionStore(
                catalog,
                field_defaults=definition.field_defaults(_NOW),
                slot_defaults=definition.slot_defaults,
            )
            moves = [(slot, opt.id) for slot in catalog.slots for opt in slot.options]
            # every option once, then a random walk that revisits them
            moves += [rng.choice(moves) for _ in range(300)]
            for n, (slot, option_id) in enumerate(moves):
                if slot.cardinality == Cardinality.MULTI:
                    store.toggle_multi(slot.name, option_id)
                elif rng.random() < 0.1:
                    store.set_single(slot.name, None)
                else:
                    store.set_single(slot.name, option_id)
                with self.subTest(wizard=key, move=n, slot=slot.name, option=option_id):
                    d = derive(store.get_snapshot(), catalog, definition.rules)
                    self.assertEqual(d.revision, store.revision)
                    self.assertGreaterEqual(d.total_cost, 0)


if __name__ == "__main__":
    unittest.main()
