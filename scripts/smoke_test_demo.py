from __future__ import annotations

"""
Smoke test for the wizards (local, offline).

Each scenario opens a wizard session with a fixed clock, applies a scripted sequence of
"button presses" (selections, field edits, Next), then:
- assembles the Summary
- renders the summary PDF (summary_pdf)
- writes the Summary JSON next to it

It writes artifacts to `out/smoke_test_demo/` and exits non-zero if anything breaks.

Usage:
  python3 scripts/smoke_test_demo.py
  python3 scripts/smoke_test_demo.py --out-dir out/smoke_test_demo
"""

import argparse
import json
import sys
import traceback
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Callable, List, Optional

# Allow running as `python3 scripts/smoke_test_demo.py` (module imports live at repo root).
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from derivation_engine import working_days
from step_controller import StepValidationError
from summary_pdf import format_amount, make_summary_pdf_bytes
from wizard_catalogs import build_wizard
from wizard_log import setup_logger
from wizard_session import WizardSession

_CLOCK = datetime(2025, 3, 14, 10, 30, 0)


@dataclass(frozen=True)
class Step:
    label: str
    apply: Callable[[WizardSession], object]


def _next(s: WizardSession) -> object:
    return s.advance()


def _run_scenario(*, name: str, wizard_key: str, steps: List[Step], out_dir: Path) -> None:
    session = WizardSession(build_wizard(wizard_key, clock=lambda: _CLOCK), clock=lambda: _CLOCK)

    print("")
    print("=" * 72)
    print(f"SCENARIO: {name} ({wizard_key})")
    print("=" * 72)

    for i, step in enumerate(steps, start=1):
        step.apply(session)
        derived = session.derived
        print(f"[{i}/{len(steps)}] {step.label}")
        print(f"  - step: {session.step_index}  complete: {session.complete}")
        print(f"  - total: {format_amount(derived.total_cost)}  time: {derived.total_duration:g} h")

    summary = session.assemble()
    financing = session.definition.rules.financing
    pdf_bytes = make_summary_pdf_bytes(summary, title=session.definition.title, currency="₹", financing=financing)
    if not pdf_bytes.startswith(b"%PDF"):
        raise RuntimeError(f"{name}: PDF output is not a PDF")

    (out_dir / f"{name}.pdf").write_bytes(pdf_bytes)
    (out_dir / f"{name}.json").write_text(json.dumps(summary.to_dict(), indent=2, default=str), encoding="utf-8")

    print(f"  - reference: {summary.reference}")
    print(f"  - line items: {len(summary.derived.line_items)}")
    if summary.derived.total_duration:
        print(f"  - working days: {working_days(summary.derived.total_duration)}")
    for metric, value in summary.derived.metrics.items():
        print(f"  - {metric}: {summary.derived.baseline_metrics[metric]:g} -> {value:g}")
    emi = session.monthly_installment()
    if emi:
        print(f"  - EMI: {format_amount(emi)}/month")
    print(f"  - pdf: {name}.pdf")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--out-dir", default=str(_ROOT / "out" / "smoke_test_demo"))
    args = parser.parse_args(argv)

    setup_logger("WARNING")
    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    performance_steps = [
        Step("set_make_mazda", lambda s: s.set_field("vehicle_make", "mazda")),
        Step("pick_intake1", lambda s: s.set_single("intake", "intake1")),
        Step("pick_exhaust1", lambda s: s.set_single("exhaust", "exhaust1")),
        Step("pick_ecu2", lambda s: s.set_single("ecu", "ecu2")),
        Step("next_engine", _next),
        Step("pick_diff1", lambda s: s.set_single("differential", "diff1")),
        Step("next_drivetrain", _next),
        Step("pick_coil1", lambda s: s.set_single("coilovers", "coil1")),
        Step("next_suspension", _next),
        Step("pick_caliper1", lambda s: s.set_single("caliper", "caliper1")),
        Step("pick_rotor1", lambda s: s.set_single("rotor", "rotor1")),
        Step("pick_pad1", lambda s: s.set_single("pad", "pad1")),
        Step("pick_line1", lambda s: s.set_single("line", "line1")),
        Step("next_brakes", _next),
        Step("pick_spec1", lambda s: s.set_single("specialist", "spec1")),
        Step("next_installation", _next),
    ]

    rental_steps = [
        Step("pick_innova", lambda s: s.set_single("vehicle", "1")),
        Step("next_vehicle", _next),
        Step("pick_client_abc", lambda s: s.set_single("client", "1")),
        Step("next_client", _next),
        Step("set_dates", lambda s: s.set_field("end_date", date(2025, 3, 24))),
        Step("pick_weekly", lambda s: s.set_single("rental_period", "weekly")),
        Step("pick_premium_insurance", lambda s: s.set_single("insurance", "premium")),
        Step("pick_prepaid_fuel", lambda s: s.set_single("fuel", "prepaid")),
        Step("toggle_gps", lambda s: s.toggle_multi("extras", "gps")),
        Step("toggle_child_seat", lambda s: s.toggle_multi("extras", "child-seat")),
        Step("next_details", _next),
        Step("pick_company_driver", lambda s: s.set_single("driver_type", "company")),
        Step("pick_driver_rajesh", lambda s: s.set_single("driver", "1")),
        Step("next_driver", _next),
        Step("pick_bank_transfer", lambda s: s.set_single("payment_method", "bank-transfer")),
        Step("agree_terms", lambda s: s.set_field("agree_to_terms", True)),
        Step("next_payment", _next),
    ]

    def _fill(**values: object) -> Callable[[WizardSession], object]:
        def _apply(s: WizardSession) -> None:
            for k, v in values.items():
                s.set_field(k, v)

        return _apply

    def _toggle(slot: str, *ids: str) -> Callable[[WizardSession], object]:
        def _apply(s: WizardSession) -> None:
            for i in ids:
                s.toggle_multi(slot, i)

        return _apply

    onboarding_steps = [
        Step(
            "fill_personal",
            _fill(full_name="Anil Verma", email="anil.verma@example.com", phone="9876543210", address="12 MG Road, Pune"),
        ),
        Step("pick_gender", lambda s: s.set_single("gender", "male")),
        Step("next_personal", _next),
        Step(
            "fill_license",
            _fill(license_number="MH1220190012345", license_issue_date=date(2019, 6, 1), license_expiry_date=date(2039, 5, 31)),
        ),
        Step("pick_license_type", lambda s: s.set_single("license_type", "commercial")),
        Step("pick_categories", _toggle("license_categories", "LMV", "TRANS")),
        Step("next_license", _next),
        Step("fill_experience", _fill(years_of_experience=8)),
        Step("pick_vehicle_types", _toggle("vehicle_types", "car", "suv")),
        Step("pick_expertise", _toggle("expertise", "city", "highway")),
        Step("pick_languages", _toggle("languages", "hindi", "marathi", "english")),
        Step("next_experience", _next),
        Step("pick_proofs", lambda s: (s.set_single("identity_proof", "aadhar"), s.set_single("address_proof", "utilityBill"))),
        Step("fill_background", _fill(identity_number="1234-5678-9012", background_check_consent=True)),
        Step("next_background", _next),
        Step(
            "pick_employment",
            lambda s: (
                s.set_single("employment_type", "fullTime"),
                s.set_single("compensation_type", "fixed"),
                s.set_single("availability_pattern", "weekdays"),
            ),
        ),
        Step("pick_metrics", _toggle("performance_metrics", "safety", "punctuality")),
        Step("fill_employment", _fill(salary=28000, days_per_week=6, reporting_manager="Fleet Ops", terms_accepted=True)),
        Step("next_employment", _next),
    ]

    _run_scenario(name="performance_mazda_build", wizard_key="performance", steps=performance_steps, out_dir=out_dir)
    _run_scenario(name="rental_weekly_innova", wizard_key="rental", steps=rental_steps, out_dir=out_dir)
    _run_scenario(name="onboarding_commercial_driver", wizard_key="onboarding", steps=onboarding_steps, out_dir=out_dir)

    print("")
    print(f"OK: wrote PDFs to {out_dir}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except StepValidationError as exc:
        print(f"FAIL: StepValidationError: {exc}", file=sys.stderr)
        raise SystemExit(2)
    except Exception:
        traceback.print_exc()
        raise SystemExit(1)
