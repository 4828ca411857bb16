from __future__ import annotations

import unittest

from selection_store import Cardinality, Catalog, OptionSpec, SelectionSnapshot, SelectionStore, SlotSpec
from step_controller import StepController, StepSpec, StepValidationError, UnmetRequirement, check_step


def _catalog() -> Catalog:
    return Catalog(
        slots=(
            SlotSpec("vehicle", "Vehicle", Cardinality.SINGLE, (OptionSpec("1", "Innova"), OptionSpec("2", "Bolero"))),
            SlotSpec("insurance", "Insurance", Cardinality.SINGLE, (OptionSpec("basic", "Basic"),)),
            SlotSpec("fuel", "Fuel option", Cardinality.SINGLE, (OptionSpec("prepaid", "Prepaid"),)),
            SlotSpec("extras", "Extras", Cardinality.MULTI, (OptionSpec("gps", "GPS"),)),
        )
    )


def _terms_accepted(snapshot: SelectionSnapshot):
    if snapshot.field_value("agree") is not True:
        return [UnmetRequirement("agree", "You must agree to the terms.")]
    return []


def _steps():
    return (
        StepSpec(key="vehicle", label="Vehicle", required_slots=("vehicle",)),
        StepSpec(key="details", label="Details", required_slots=("insurance", "fuel"), required_fields=("start_date",)),
        StepSpec(key="payment", label="Payment", custom_validator=_terms_accepted),
    )


class TestStepController(unittest.TestCase):
    def _controller(self) -> StepController:
        store = SelectionStore(_catalog())
        return StepController(_steps(), store, labels={"start_date": "Start date"})

    def test_starts_at_first_step(self) -> None:
        ctl = self._controller()
        self.assertEqual(ctl.index, 0)
        self.assertFalse(ctl.complete)
        self.assertEqual(ctl.current_step.key, "vehicle")  # type: ignore[union-attr]
        self.assertEqual(ctl.progress, 0.0)

    def test_failed_advance_keeps_index_and_names_unmet_slots(self) -> None:
        ctl = self._controller()
        ctl.store.set_single("vehicle", "1")
        ctl.advance()
        with self.assertRaises(StepValidationError) as cm:
            ctl.advance()
        self.assertEqual(ctl.index, 1)
        self.assertEqual(cm.exception.step_key, "details")
        self.assertEqual(cm.exception.keys, ("insurance", "fuel", "start_date"))
        self.assertEqual(
            [u.message for u in cm.exception.unmet],
            ["Please select insurance.", "Please select fuel option.", "Start date is required."],
        )

    def test_partially_filled_step_reports_only_missing(self) -> None:
        ctl = self._controller()
        ctl.store.set_single("vehicle", "2")
        ctl.advance()
        ctl.store.set_single("fuel", "prepaid")
        ctl.store.set_field("start_date", "2025-03-14")
        with self.assertRaises(StepValidationError) as cm:
            ctl.advance()
        self.assertEqual(cm.exception.keys, ("insurance",))

    def test_validate_current_does_not_move(self) -> None:
        ctl = self._controller()
        unmet = ctl.validate_current()
        self.assertEqual([u.key for u in unmet], ["vehicle"])
        self.assertEqual(ctl.index, 0)

    def test_advance_through_to_complete(self) -> None:
        ctl = self._controller()
        ctl.store.set_single("vehicle", "1")
        self.assertTrue(ctl.advance())
        ctl.store.set_single("insurance", "basic")
        ctl.store.set_single("fuel", "prepaid")
        ctl.store.set_field("start_date", "2025-03-14")
        self.assertTrue(ctl.advance())
        ctl.store.set_field("agree", True)
        self.assertTrue(ctl.advance())

        self.assertTrue(ctl.complete)
        self.assertIsNone(ctl.current_step)
        self.assertEqual(ctl.progress, 1.0)
        self.assertEqual(ctl.validate_current(), ())
        # Already complete: nothing further to do.
        self.assertFalse(ctl.advance())

    def test_custom_validator_blocks_last_step(self) -> None:
        ctl = self._controller()
        ctl.store.set_single("vehicle", "1")
        ctl.advance()
        ctl.store.set_single("insurance", "basic")
        ctl.store.set_single("fuel", "prepaid")
        ctl.store.set_field("start_date", "2025-03-14")
        ctl.advance()
        with self.assertRaises(StepValidationError) as cm:
            ctl.advance()
        self.assertEqual(cm.exception.keys, ("agree",))
        self.assertFalse(ctl.complete)

    def test_retreat_at_first_step_is_noop(self) -> None:
        ctl = self._controller()
        self.assertFalse(ctl.retreat())
        self.assertEqual(ctl.index, 0)

    def test_retreat_does_not_validate_or_clear(self) -> None:
        ctl = self._controller()
        ctl.store.set_single("vehicle", "1")
        ctl.advance()
        self.assertTrue(ctl.retreat())
        self.assertEqual(ctl.index, 0)
        self.assertEqual(ctl.store.get_snapshot().single("vehicle"), "1")

    def test_retreat_from_complete_is_refused(self) -> None:
        ctl = StepController((StepSpec(key="only", label="Only"),), SelectionStore(_catalog()))
        ctl.advance()
        self.assertTrue(ctl.complete)
        self.assertFalse(ctl.retreat())
        self.assertTrue(ctl.complete)

    def test_reset_returns_to_first_step_and_clears_store(self) -> None:
        ctl = self._controller()
        ctl.store.set_single("vehicle", "1")
        ctl.advance()
        ctl.reset()
        self.assertEqual(ctl.index, 0)
        self.assertFalse(ctl.complete)
        self.assertTrue(ctl.store.get_snapshot().is_empty())

    def test_rejects_bad_step_lists(self) -> None:
        store = SelectionStore(_catalog())
        with self.assertRaises(ValueError):
            StepController((), store)
        with self.assertRaises(ValueError):
            StepController((StepSpec("a", "A"), StepSpec("a", "A again")), store)
        with self.assertRaises(ValueError):
            StepController((StepSpec("a", "A", required_slots=("turbo",)),), store)

    def test_check_step_treats_blank_strings_and_empty_lists_as_missing(self) -> None:
        store = SelectionStore(_catalog())
        store.set_field("name", "   ")
        store.set_field("tags", [])
        store.set_field("count", 0)
        step = StepSpec("s", "S", required_fields=("name", "tags", "count"))
        unmet = check_step(step, store.get_snapshot())
        self.assertEqual([u.key for u in unmet], ["name", "tags"])


if __name__ == "__main__":
    unittest.main()
