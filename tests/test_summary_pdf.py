from __future__ import annotations

import unittest
from datetime import datetime

from derivation_engine import FinancingTerms, derive
from selection_store import SelectionStore
from summary_assembler import assemble
from summary_pdf import format_amount, make_summary_pdf_bytes
from wizard_catalogs import build_wizard
from wizard_session import WizardSession

_NOW = datetime(2025, 3, 14, 10, 30, 0)


def _complete_performance() -> WizardSession:
    clock = lambda: _NOW  # noqa: E731
    s = WizardSession(build_wizard("performance", clock), clock=clock)
    s.set_single("intake", "intake1")
    s.set_single("ecu", "ecu1")
    for _ in range(4):
        s.advance()
    s.set_single("specialist", "spec1")
    s.advance()
    return s


class TestSummaryPdf(unittest.TestCase):
    def _count_pdf_pages(self, pdf: bytes) -> int:
        page = pdf.count(b"/Type /Page")
        pages_tree = pdf.count(b"/Type /Pages")
        return max(0, page - pages_tree)

    def test_format_amount_uses_ascii_currency(self) -> None:
        self.assertEqual(format_amount(75000), "Rs. 75,000")
        self.assertEqual(format_amount(-1500.5, "$"), "-$1,500.50")

    def test_make_summary_pdf_bytes_returns_pdf(self) -> None:
        summary = _complete_performance().assemble()
        pdf = make_summary_pdf_bytes(
            summary,
            title="Performance Enhancement Studio",
            financing=FinancingTerms(months=24, annual_rate=0.10),
        )
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertGreater(len(pdf), 1000)
        self.assertIn(summary.reference.encode("ascii"), pdf)
        self.assertIn(b"LINE ITEMS", pdf)
        self.assertIn(b"Dyno calibration", pdf)
        self.assertIn(b"PERFORMANCE", pdf)
        self.assertIn(b"FINANCING", pdf)
        self.assertEqual(self._count_pdf_pages(pdf), 1)

    def test_no_financing_section_without_terms(self) -> None:
        summary = _complete_performance().assemble()
        pdf = make_summary_pdf_bytes(summary, title="Performance")
        self.assertNotIn(b"FINANCING", pdf)

    def test_long_summaries_paginate(self) -> None:
        definition = build_wizard("onboarding", lambda: _NOW)
        store = SelectionStore(definition.catalog)
        # Plenty of free-form fields to push the selections section past one page.
        for i in range(80):
            store.set_field(f"note_{i:02d}", f"Reference note number {i}")
        snap = store.get_snapshot()
        summary = assemble(snap, derive(snap, definition.catalog), wizard_key="onboarding", completed_at=_NOW)
        pdf = make_summary_pdf_bytes(summary, title="Add Driver")
        self.assertGreaterEqual(self._count_pdf_pages(pdf), 2)
        self.assertIn(b"note 79", pdf.lower())


if __name__ == "__main__":
    unittest.main()
