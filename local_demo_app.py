from __future__ import annotations

import hashlib
import hmac
import json
import os
from dataclasses import replace
from datetime import date
from typing import Dict, List, Literal, Optional, Tuple

import streamlit as st

from derivation_engine import working_days
from selection_store import Cardinality, OptionSpec, SlotSpec
from submit_client import SubmitResult, make_submitter
from summary_assembler import Summary
from summary_pdf import make_summary_pdf_bytes
from wizard_catalogs import WIZARD_BUILDERS, build_wizard
from wizard_config import Config, load_config
from wizard_log import get_logger, log_event, setup_logger
from wizard_session import StepOutcome, WizardSession

logger = get_logger(__name__)

FieldKind = Literal["slot", "text", "date", "number", "check"]

# Controls shown on each step, in render order. Requirements live on the StepSpec.
_STEP_LAYOUT: Dict[str, Dict[str, Tuple[Tuple[FieldKind, str], ...]]] = {
    "performance": {
        "engine": (("text", "vehicle_make"), ("slot", "intake"), ("slot", "exhaust"), ("slot", "ecu")),
        "drivetrain": (("slot", "transmission"), ("slot", "clutch"), ("slot", "differential")),
        "suspension": (("slot", "coilovers"), ("slot", "springs"), ("slot", "sway_bars"), ("slot", "bushings")),
        "brakes": (("slot", "caliper"), ("slot", "rotor"), ("slot", "pad"), ("slot", "line")),
        "installation": (("slot", "specialist"), ("date", "installation_date")),
    },
    "rental": {
        "vehicle": (("slot", "vehicle"),),
        "client": (("slot", "client"), ("text", "new_client_name"), ("text", "new_client_email")),
        "details": (
            ("date", "start_date"),
            ("date", "end_date"),
            ("slot", "rental_period"),
            ("slot", "insurance"),
            ("slot", "fuel"),
            ("slot", "extras"),
        ),
        "driver": (("slot", "driver_type"), ("slot", "driver")),
        "payment": (("slot", "payment_method"), ("number", "security_deposit"), ("check", "agree_to_terms")),
    },
    "onboarding": {
        "personal": (("text", "full_name"), ("text", "email"), ("text", "phone"), ("slot", "gender"), ("text", "address")),
        "license": (
            ("text", "license_number"),
            ("slot", "license_type"),
            ("slot", "license_categories"),
            ("date", "license_issue_date"),
            ("date", "license_expiry_date"),
        ),
        "experience": (
            ("number", "years_of_experience"),
            ("slot", "vehicle_types"),
            ("slot", "expertise"),
            ("slot", "languages"),
        ),
        "background": (
            ("slot", "identity_proof"),
            ("text", "identity_number"),
            ("slot", "address_proof"),
            ("check", "background_check_consent"),
        ),
        "employment": (
            ("slot", "employment_type"),
            ("slot", "compensation_type"),
            ("number", "salary"),
            ("number", "days_per_week"),
            ("slot", "availability_pattern"),
            ("slot", "performance_metrics"),
            ("text", "reporting_manager"),
            ("check", "terms_accepted"),
        ),
    },
}


def _format_amount(amount: float, currency: str = "₹") -> str:
    return f"{currency}{amount:,.0f}"


def _read_secret_or_env_str(key: str) -> str:
    """
    Read a configuration value from Streamlit Secrets (preferred) or environment variables.

    Returns a stripped string; returns "" when missing.
    """
    val: object = ""
    try:
        val = st.secrets.get(key, "")  # type: ignore[attr-defined]
    except Exception:
        # No secrets.toml at all.
        val = ""
    if not val:
        val = os.environ.get(key, "")
    if isinstance(val, str):
        return val.strip()
    return str(val).strip() if val is not None else ""


_CONFIG_KEYS = (
    "WIZARD_SUBMIT_URL",
    "WIZARD_SUBMIT_TIMEOUT_S",
    "WIZARD_EVENT_LOG",
    "WIZARD_LOG_LEVEL",
    "WIZARD_FINANCING_MONTHS",
    "WIZARD_FINANCING_RATE",
    "WIZARD_CURRENCY",
)


def _load_app_config() -> Config:
    """
    Mirror Streamlit secrets into the environment, then load the shared Config.

    Secrets win over `.env`; python-dotenv never overrides variables already set.
    """
    for key in _CONFIG_KEYS:
        value = _read_secret_or_env_str(key)
        if value:
            os.environ[key] = value
    return load_config()


def _sha256_hex(text: str) -> str:
    if not isinstance(text, str):
        raise TypeError("text must be str")
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _password_gate() -> None:
    """
    Optional in-app password gate for hosted demos.

    Enable by setting ONE of:
    - APP_PASSWORD (plain text), or
    - APP_PASSWORD_SHA256 (hex sha256 of the password)

    If neither is set, the app runs without a gate.
    """
    expected_password = _read_secret_or_env_str("APP_PASSWORD")
    expected_sha = _read_secret_or_env_str("APP_PASSWORD_SHA256").lower()
    if not expected_password and not expected_sha:
        return

    if bool(st.session_state.get("_auth_ok", False)):
        if st.sidebar.button("Log out", key="auth_logout", use_container_width=True):
            st.session_state["_auth_ok"] = False
            st.rerun()
        return

    st.markdown("## Login")
    st.caption("Enter the password to access this demo.")

    with st.form("auth_form", clear_on_submit=False):
        pw = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in", use_container_width=True)

    if submitted:
        pw = str(pw or "")
        ok = False
        if expected_sha:
            ok = hmac.compare_digest(_sha256_hex(pw), expected_sha)
        elif expected_password:
            ok = hmac.compare_digest(pw, expected_password)

        if ok:
            st.session_state["_auth_ok"] = True
            st.rerun()
        st.error("Incorrect password.")

    st.stop()


# region session state


def _step_layout(wizard_key: str, step_key: str) -> Tuple[Tuple[FieldKind, str], ...]:
    return _STEP_LAYOUT.get(wizard_key, {}).get(step_key, ())


def _widget_key(wizard_key: str, name: str) -> str:
    # The generation counter changes on reset so widgets drop their stale values.
    gen = int(st.session_state.get(f"_gen_{wizard_key}") or 0)
    return f"w_{wizard_key}_{gen}_{name}"


def _get_session(wizard_key: str, config: Config) -> WizardSession:
    sessions = st.session_state.setdefault("wizard_sessions", {})
    session = sessions.get(wizard_key)
    if session is None:
        definition = build_wizard(wizard_key)
        if definition.rules.financing is not None:
            definition = replace(definition, rules=replace(definition.rules, financing=config.financing))
        submit = make_submitter(config, definition.submit_path) if definition.submit_path else None
        session = WizardSession(definition, submit=submit)
        sessions[wizard_key] = session
        logger.info("Opened wizard %s", wizard_key)
    return session


def _reset_session(session: WizardSession) -> None:
    key = session.definition.key
    session.reset()
    st.session_state[f"_gen_{key}"] = int(st.session_state.get(f"_gen_{key}") or 0) + 1
    for name in (f"_outcome_{key}", f"_summary_{key}", f"_pdf_{key}", f"_submit_{key}"):
        st.session_state.pop(name, None)


def _unmet_by_key(outcome: Optional[StepOutcome]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    if outcome is None or outcome.ok:
        return grouped
    for u in outcome.unmet:
        grouped.setdefault(u.key, []).append(u.message)
    return grouped


def _option_label(opt: OptionSpec, currency: str) -> str:
    parts = [opt.label]
    if opt.price:
        parts.append(_format_amount(opt.price, currency))
    if opt.duration:
        parts.append(f"{opt.duration:g} h")
    status = opt.attr("status")
    if status:
        parts.append(str(status))
    return " | ".join(parts)


def _summary_json(summary: Summary) -> str:
    return json.dumps(summary.to_dict(), indent=2, default=str)


def _line_item_rows(session: WizardSession, currency: str) -> List[Dict[str, object]]:
    return [
        {
            "Description": li.description,
            "Group": li.group,
            "Hours": li.duration or "",
            "Amount": _format_amount(li.amount, currency),
        }
        for li in session.derived.line_items
    ]


# endregion session state

# region controls


def _on_single_change(session: WizardSession, slot: str, widget_key: str) -> None:
    value = st.session_state.get(widget_key) or None
    if value != session.snapshot.single(slot):
        session.set_single(slot, value)


def _on_multi_change(session: WizardSession, slot: str, widget_key: str) -> None:
    wanted = set(st.session_state.get(widget_key) or [])
    current = set(session.snapshot.selected(slot))
    for option_id in sorted(wanted ^ current):
        session.toggle_multi(slot, option_id)


def _on_field_change(session: WizardSession, name: str, widget_key: str) -> None:
    session.set_field(name, st.session_state.get(widget_key))


def _render_slot(session: WizardSession, spec: SlotSpec, *, currency: str, disabled: bool) -> None:
    key = _widget_key(session.definition.key, spec.name)
    make = str(session.snapshot.field_value("vehicle_make") or "").strip().lower()
    options = session.store.available_options(spec.name, tag=make or None)
    labels = {opt.id: _option_label(opt, currency) for opt in options}

    if spec.cardinality == Cardinality.MULTI:
        current = [i for i in session.snapshot.selected(spec.name) if i in labels]
        st.multiselect(
            spec.label,
            options=list(labels),
            default=current,
            format_func=lambda i: labels.get(i, i),
            key=key,
            on_change=_on_multi_change,
            args=(session, spec.name, key),
            disabled=disabled,
        )
        return

    choices = [""] + list(labels)
    current_id = session.snapshot.single(spec.name) or ""
    st.radio(
        spec.label,
        options=choices,
        index=choices.index(current_id) if current_id in choices else 0,
        format_func=lambda i: labels.get(i, "None"),
        key=key,
        on_change=_on_single_change,
        args=(session, spec.name, key),
        disabled=disabled,
    )


def _render_field(session: WizardSession, kind: FieldKind, name: str, *, disabled: bool) -> None:
    key = _widget_key(session.definition.key, name)
    label = session.definition.field_labels.get(name, name.replace("_", " ").capitalize())
    value = session.snapshot.field_value(name)
    common = dict(key=key, on_change=_on_field_change, args=(session, name, key), disabled=disabled)

    if kind == "date":
        st.date_input(label, value=value if isinstance(value, date) else None, **common)
    elif kind == "number":
        st.number_input(label, value=float(value or 0), step=1.0, **common)
    elif kind == "check":
        st.checkbox(label, value=bool(value), **common)
    else:
        st.text_input(label, value=str(value or ""), **common)


def _render_step(session: WizardSession, *, currency: str) -> None:
    step = session.controller.current_step
    if step is None:
        return
    wizard_key = session.definition.key
    unmet = _unmet_by_key(st.session_state.get(f"_outcome_{wizard_key}"))

    st.subheader(step.label)
    for kind, name in _step_layout(wizard_key, step.key):
        if kind == "slot":
            spec = session.definition.catalog.slot(name)
            if spec is None:
                continue
            _render_slot(session, spec, currency=currency, disabled=False)
        else:
            _render_field(session, kind, name, disabled=False)
        for msg in unmet.pop(name, []):
            st.error(msg)
    # Messages not tied to a rendered control (e.g. "select at least one upgrade").
    for messages in unmet.values():
        for msg in messages:
            st.error(msg)

    st.divider()
    _render_step_controls(session)


def _render_step_controls(session: WizardSession) -> None:
    wizard_key = session.definition.key
    col1, col2, _ = st.columns([1, 1, 6])

    if session.step_index > 0:
        if col1.button("Back", key=f"wizard_back_{wizard_key}_{session.step_index}", use_container_width=True):
            session.retreat()
            st.session_state.pop(f"_outcome_{wizard_key}", None)
            st.rerun()

    last = session.step_index == len(session.definition.steps) - 1
    if col2.button("Review" if last else "Next", key=f"wizard_next_{wizard_key}_{session.step_index}", use_container_width=True):
        outcome = session.try_advance()
        st.session_state[f"_outcome_{wizard_key}"] = outcome
        st.rerun()


# endregion controls


def _render_review(session: WizardSession, config: Config) -> None:
    wizard_key = session.definition.key
    currency = config.currency
    derived = session.derived
    summary: Optional[Summary] = st.session_state.get(f"_summary_{wizard_key}")

    st.markdown("## Review")
    left, right = st.columns([2, 1], gap="large")
    with left:
        st.metric("Total", _format_amount(derived.total_cost, currency))
        if derived.line_items:
            st.dataframe(_line_item_rows(session, currency), use_container_width=True, hide_index=True)
    with right:
        if derived.total_duration:
            st.metric("Time", f"{derived.total_duration:g} h", help=f"{working_days(derived.total_duration)} working days")
        emi = session.monthly_installment()
        if emi:
            st.metric("EMI", f"{_format_amount(emi, currency)}/month")
        for name, value in derived.metrics.items():
            st.metric(name.replace("_", " ").capitalize(), f"{value:g}", delta=round(derived.metric_delta(name), 2))

    if summary is None:
        st.caption("Selections are final at this point; use **Start over** in the sidebar to change them.")
        if st.button("Confirm", key=f"review_confirm_{wizard_key}", type="primary"):
            _confirm(session, config)
            st.rerun()
        return

    st.success(f"Confirmed **{summary.reference}**.")
    submit_result: Optional[SubmitResult] = st.session_state.get(f"_submit_{wizard_key}")
    if submit_result is None:
        st.info("WIZARD_SUBMIT_URL not set; skipped POST.")
    elif submit_result.ok:
        st.success(f"Submitted (HTTP {submit_result.status_code}).")
    elif submit_result.status_code == 0:
        st.warning(f"Submit failed: {submit_result.body}")
    else:
        st.warning(f"Submit returned HTTP {submit_result.status_code}.")

    pdf_bytes = st.session_state.get(f"_pdf_{wizard_key}")
    if isinstance(pdf_bytes, (bytes, bytearray)):
        st.download_button(
            "Download summary (PDF)",
            data=bytes(pdf_bytes),
            file_name=f"{summary.reference}.pdf",
            mime="application/pdf",
            use_container_width=True,
        )
    st.download_button(
        "Download summary (JSON)",
        data=_summary_json(summary),
        file_name=f"{summary.reference}.json",
        mime="application/json",
        use_container_width=True,
    )


def _confirm(session: WizardSession, config: Config) -> None:
    wizard_key = session.definition.key
    if session.can_submit:
        st.session_state[f"_submit_{wizard_key}"] = session.submit()
    summary = session.assemble()
    st.session_state[f"_summary_{wizard_key}"] = summary
    try:
        st.session_state[f"_pdf_{wizard_key}"] = make_summary_pdf_bytes(
            summary,
            title=session.definition.title,
            currency=config.currency,
            financing=session.definition.rules.financing,
        )
    except Exception as exc:
        # The summary is confirmed even if the PDF cannot be rendered.
        logger.exception("PDF render failed for %s", summary.reference)
        st.session_state[f"_pdf_{wizard_key}"] = None
        st.error(f"Could not generate PDF: {exc}")


def _render_sidebar(session: WizardSession, config: Config) -> None:
    currency = config.currency
    labels = [s.label for s in session.definition.steps]

    with st.sidebar.expander("Wizard", expanded=True):
        for idx, label in enumerate(labels):
            if session.complete:
                marker = "✅"
            else:
                marker = "➡️" if idx == session.step_index else ("✅" if idx < session.step_index else "•")
            st.write(f"{marker} {label}")
        st.progress(session.controller.progress)

    derived = session.derived
    st.sidebar.caption("Live summary")
    st.sidebar.metric("Total", _format_amount(derived.total_cost, currency))
    if derived.total_duration:
        st.sidebar.write(f"Time: {derived.total_duration:g} h ({working_days(derived.total_duration)} days)")
    emi = session.monthly_installment()
    if emi:
        st.sidebar.write(f"EMI: {_format_amount(emi, currency)}/month")
    if derived.line_items:
        with st.sidebar.expander("Line items (preview)", expanded=False):
            st.dataframe(_line_item_rows(session, currency), use_container_width=True, hide_index=True)

    if st.sidebar.button("Start over", key=f"reset_{session.definition.key}", use_container_width=True):
        _reset_session(session)
        st.rerun()


def main() -> None:
    st.set_page_config(page_title="Vehicle Wizards (Local)", layout="wide")

    _password_gate()
    try:
        config = _load_app_config()
    except ValueError as exc:
        st.error(str(exc))
        st.stop()
        return
    setup_logger(config.log_level)

    wizard_key = st.sidebar.selectbox(
        "Wizard",
        options=list(WIZARD_BUILDERS),
        format_func=lambda k: k.capitalize(),
        key="wizard_key",
    )
    session = _get_session(wizard_key, config)
    st.title(session.definition.title)

    log_event(
        location="local_demo_app.py:main",
        message="rerun",
        data={
            "wizard": wizard_key,
            "step": session.step_index,
            "complete": session.complete,
            "revision": session.store.revision,
            "total": session.derived.total_cost,
        },
    )

    if session.complete:
        _render_review(session, config)
    else:
        _render_step(session, currency=config.currency)

    _render_sidebar(session, config)


if __name__ == "__main__":
    main()
