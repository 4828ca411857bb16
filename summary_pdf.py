from __future__ import annotations

from io import BytesIO
from typing import List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from derivation_engine import FinancingTerms, monthly_installment, working_days
from summary_assembler import Summary

# Built-in Type1 fonts have no glyph for these; substitute an ASCII code.
_ASCII_CURRENCY = {"₹": "Rs. ", "€": "EUR ", "£": "GBP "}


def format_amount(amount: float, currency: str = "₹") -> str:
    """
    Format a whole-unit amount for the PDF (ASCII only), e.g. 75000 -> "Rs. 75,000".
    """
    symbol = _ASCII_CURRENCY.get(currency, currency)
    sign = "-" if amount < 0 else ""
    value = abs(float(amount))
    if value == int(value):
        return f"{sign}{symbol}{value:,.0f}"
    return f"{sign}{symbol}{value:,.2f}"


def _format_number(value: float) -> str:
    return f"{value:g}"


def make_summary_pdf_bytes(
    summary: Summary,
    *,
    title: str,
    currency: str = "₹",
    financing: Optional[FinancingTerms] = None,
) -> bytes:
    """
    Render a confirmed wizard Summary as a one-or-more page PDF.

    Page 1 carries the header band (reference / date / total), then the sections below
    flow down and continue on new pages as needed:
    selections, line items, subtotals, metrics (baseline -> new), financing.
    """
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    # Uncompressed so tests can find markers in the bytes.
    c.setPageCompression(0)
    w, h = A4

    margin = 0.6 * inch
    x0 = margin
    y_top = h - margin
    pad = 0.15 * inch
    derived = summary.derived

    # Header band
    header_h = 1.1 * inch
    _rect(c, x0, y_top - header_h, w - 2 * margin, header_h, stroke=1, fill=0)
    c.setFont("Helvetica-Bold", 13)
    _draw_truncated(c, x0 + pad, y_top - 0.40 * inch, title, max_width=(w - 2 * margin) * 0.55)
    c.setFont("Helvetica", 9)
    c.drawString(x0 + pad, y_top - 0.62 * inch, f"Wizard: {summary.wizard_key}")

    box_w = 2.4 * inch
    box_x = w - margin - box_w
    line_h = 0.22 * inch
    t_y = y_top - 0.32 * inch
    c.setFont("Helvetica-Bold", 10)
    c.drawString(box_x + pad, t_y, summary.reference)
    c.setFont("Helvetica", 9)
    t_y -= line_h
    c.drawString(box_x + pad, t_y, f"Date: {summary.completed_at.strftime('%Y-%m-%d %H:%M')}")
    c.setFont("Helvetica-Bold", 11)
    t_y -= line_h + 0.03 * inch
    c.drawString(box_x + pad, t_y, f"Total: {format_amount(derived.total_cost, currency)}")

    cursor = _Cursor(c, top_y=y_top - header_h - 0.30 * inch, page_top_y=y_top, bottom_y=margin + 0.4 * inch)
    right_x = w - margin

    # Selections
    cursor.section("SELECTIONS", x0, right_x)
    for label, value in _selection_rows(summary):
        cursor.row(x0 + pad, right_x - pad, label, value)
    for name, value in summary.selections.fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        cursor.row(x0 + pad, right_x - pad, name.replace("_", " ").capitalize(), _field_text(value))

    # Line items
    if derived.line_items:
        cursor.section("LINE ITEMS", x0, right_x)
        for li in derived.line_items:
            detail = format_amount(li.amount, currency)
            if li.duration:
                detail = f"{_format_number(li.duration)} h   {detail}"
            cursor.row(x0 + pad, right_x - pad, li.description, detail)

    # Subtotals
    if derived.subtotals:
        cursor.section("TOTALS", x0, right_x)
        for group, amount in derived.subtotals.items():
            cursor.row(x0 + pad, right_x - pad, group.capitalize(), format_amount(amount, currency))
        if derived.total_duration:
            hours = derived.total_duration
            cursor.row(
                x0 + pad,
                right_x - pad,
                "Total time",
                f"{_format_number(hours)} h ({working_days(hours)} working days)",
            )
        cursor.row(x0 + pad, right_x - pad, "Grand Total", format_amount(derived.total_cost, currency), bold=True)

    # Metrics
    if derived.metrics:
        cursor.section("PERFORMANCE", x0, right_x)
        for name, value in derived.metrics.items():
            base = derived.baseline_metrics.get(name, value)
            cursor.row(
                x0 + pad,
                right_x - pad,
                name.replace("_", " ").capitalize(),
                f"{_format_number(base)} -> {_format_number(value)}",
            )

    if financing is not None and derived.total_cost > 0:
        cursor.section("FINANCING", x0, right_x)
        emi = monthly_installment(derived.total_cost, financing)
        cursor.row(
            x0 + pad,
            right_x - pad,
            f"{financing.months} months at {financing.annual_rate * 100:g}% p.a.",
            f"{format_amount(emi, currency)} / month",
        )

    c.setFont("Helvetica", 8)
    c.setFillColor(colors.grey)
    c.drawString(x0, margin, f"Reference: {summary.reference}")
    c.setFillColor(colors.black)

    c.showPage()
    c.save()
    return buf.getvalue()


class _Cursor:
    """Top-down writer that starts a new page when the next row would cross the footer."""

    row_h = 0.24 * inch

    def __init__(self, c: canvas.Canvas, *, top_y: float, page_top_y: float, bottom_y: float):
        self.c = c
        self.y = top_y
        self.page_top_y = page_top_y
        self.bottom_y = bottom_y

    def _ensure_room(self, height: float) -> None:
        if self.y - height < self.bottom_y:
            self.c.showPage()
            self.y = self.page_top_y

    def section(self, title: str, x1: float, x2: float) -> None:
        self._ensure_room(3 * self.row_h)
        self.y -= 0.10 * inch
        self.c.setFont("Helvetica-Bold", 10)
        self.c.drawString(x1, self.y, title)
        self.y -= 0.08 * inch
        _hline(self.c, x1, x2, self.y)
        self.y -= self.row_h

    def row(self, x1: float, x2: float, label: str, value: str, *, bold: bool = False) -> None:
        self._ensure_room(self.row_h)
        self.c.setFont("Helvetica-Bold" if bold else "Helvetica", 9)
        value_w = self.c.stringWidth(value)
        _draw_truncated(self.c, x1, self.y, label, max_width=max(0.0, x2 - x1 - value_w - 0.2 * inch))
        self.c.drawRightString(x2, self.y, value)
        self.y -= self.row_h


def _selection_rows(summary: Summary) -> List[Tuple[str, str]]:
    rows: List[Tuple[str, str]] = []
    descriptions = {li.code: li.description for li in summary.derived.line_items}
    for slot, ids in summary.selections.slots.items():
        if not ids:
            continue
        labels = []
        for option_id in ids:
            desc = descriptions.get(f"{slot}:{option_id}", option_id)
            labels.append(desc.split(": ", 1)[-1])
        rows.append((slot.replace("_", " ").capitalize(), ", ".join(labels)))
    return rows


def _field_text(value: object) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if hasattr(value, "isoformat"):
        return value.isoformat()  # type: ignore[attr-defined]
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _rect(c: canvas.Canvas, x: float, y: float, w: float, h: float, *, stroke: int, fill: int) -> None:
    c.rect(x, y, w, h, stroke=stroke, fill=fill)


def _hline(c: canvas.Canvas, x1: float, x2: float, y: float) -> None:
    c.line(x1, y, x2, y)


def _draw_truncated(c: canvas.Canvas, x: float, y: float, text: str, *, max_width: float) -> None:
    """
    Draw text truncated with ellipsis so it stays inside a box.
    """
    t = (text or "").strip()
    if not t or max_width <= 0:
        return
    if c.stringWidth(t) <= max_width:
        c.drawString(x, y, t)
        return
    ell = "..."
    lo = 0
    hi = len(t)
    best = ""
    while lo <= hi:
        mid = (lo + hi) // 2
        cand = (t[:mid].rstrip() + ell) if mid < len(t) else t
        if c.stringWidth(cand) <= max_width:
            best = cand
            lo = mid + 1
        else:
            hi = mid - 1
    if best:
        c.drawString(x, y, best)
