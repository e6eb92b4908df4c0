# posinvoice/receipts.py
"""
Receipt rendering for recorded sales.

Two layouts are supported for both outputs:
- thermal: 80mm roll paper (42 character lines for plain text)
- a4: full page invoice (80 character lines for plain text)

Plain text is what gets sent to a receipt printer; the PDF carries the same
fields for e-mailing or archiving.
"""
import io
import textwrap
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch, mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.flowables import HRFlowable

from .errors import ValidationFailed
from .models import Sale, SaleItem, ShopProfile

LAYOUTS = ("thermal", "a4")
TEXT_WIDTHS = {"thermal": 42, "a4": 80}

CURRENCY = "Rs."
WALK_IN = "Walk-in Customer"
FOOTER = "Thank you for shopping with us!"


def _check_layout(layout: str) -> None:
    if layout not in LAYOUTS:
        raise ValidationFailed(f"layout:{layout}")


def invoice_number(sale: Sale) -> str:
    return sale.id[-8:]


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _weight_note(item: SaleItem) -> Optional[str]:
    if item.weight is None or item.unit is None:
        return None
    return f"{item.weight:g}{item.unit} each"


def _payment_label(sale: Sale) -> str:
    return sale.payment_method.upper()


def render_text(sale: Sale, profile: ShopProfile, layout: str = "thermal") -> str:
    _check_layout(layout)
    width = TEXT_WIDTHS[layout]
    num_w = 9 if layout == "thermal" else 12
    name_w = width - 3 * num_w

    out: List[str] = []
    out.append(profile.shop_name.upper().center(width).rstrip())
    if profile.address:
        for part in textwrap.wrap(profile.address, width):
            out.append(part.center(width).rstrip())
    if profile.phone:
        out.append(f"Phone: {profile.phone}".center(width).rstrip())
    if profile.gst_number:
        out.append(f"GST: {profile.gst_number}".center(width).rstrip())
    out.append("-" * width)

    out.append(f"Customer: {sale.customer_name or WALK_IN}")
    if sale.customer_mobile:
        out.append(f"Phone: {sale.customer_mobile}")
    out.append(sale.created_at.strftime("%d %b %Y, %H:%M"))
    out.append(f"Invoice: #{invoice_number(sale)}")
    out.append("=" * width)

    out.append("ITEM".ljust(name_w) + "QTY".rjust(num_w) + "PRICE".rjust(num_w) + "TOTAL".rjust(num_w))
    out.append("-" * width)
    for item in sale.items:
        names = textwrap.wrap(item.name, name_w) or [""]
        out.append(
            names[0].ljust(name_w)
            + f"x{item.quantity}".rjust(num_w)
            + _money(item.unit_price).rjust(num_w)
            + _money(item.line_total).rjust(num_w)
        )
        out.extend("  " + rest for rest in names[1:])
        note = _weight_note(item)
        if note:
            out.append(f"  {note}")
    out.append("=" * width)

    def total_row(label: str, value: str) -> str:
        return label.ljust(width - len(value)) + value

    out.append(total_row("Subtotal:", f"{CURRENCY}{_money(sale.subtotal)}"))
    if sale.discount_amount > 0:
        out.append(total_row(f"Discount ({sale.discount_percent:g}%):", f"-{CURRENCY}{_money(sale.discount_amount)}"))
    if sale.gst_enabled:
        out.append(total_row("GST:", f"{CURRENCY}{_money(sale.tax_amount)}"))
    out.append(total_row("TOTAL:", f"{CURRENCY}{_money(sale.total)}"))
    out.append(total_row("Payment:", _payment_label(sale)))
    out.append("-" * width)
    out.append(FOOTER.center(width).rstrip())
    return "\n".join(out) + "\n"


class ReceiptGenerator:
    """PDF receipts built with reportlab platypus flowables."""

    THERMAL_WIDTH = 80 * mm
    THERMAL_MARGIN = 5 * mm
    STANDARD_MARGIN = 20 * mm

    def __init__(self, sale: Sale, profile: ShopProfile):
        self.sale = sale
        self.profile = profile
        self.styles = getSampleStyleSheet()
        self._create_styles()

    def _create_styles(self):
        self.shop_style = ParagraphStyle(
            "ShopName", parent=self.styles["Heading1"], fontSize=18, spaceAfter=6,
            alignment=1, fontName="Helvetica-Bold",
        )
        self.thermal_shop_style = ParagraphStyle(
            "ThermalShop", parent=self.shop_style, fontSize=13, spaceAfter=4,
        )
        self.body_style = ParagraphStyle(
            "Body", parent=self.styles["Normal"], fontSize=10, spaceAfter=4,
        )
        self.thermal_body_style = ParagraphStyle(
            "ThermalBody", parent=self.body_style, fontSize=7.5, spaceAfter=2, leading=9,
        )
        self.total_style = ParagraphStyle(
            "Total", parent=self.body_style, fontSize=12, alignment=2, fontName="Helvetica-Bold",
        )
        self.thermal_total_style = ParagraphStyle(
            "ThermalTotal", parent=self.total_style, fontSize=9,
        )

    def generate_pdf(self, layout: str = "thermal") -> bytes:
        _check_layout(layout)
        thermal = layout == "thermal"
        buffer = io.BytesIO()
        if thermal:
            # fixed roll length; long receipts continue on the next "page"
            doc = SimpleDocTemplate(
                buffer,
                pagesize=(self.THERMAL_WIDTH, 11 * inch),
                rightMargin=self.THERMAL_MARGIN,
                leftMargin=self.THERMAL_MARGIN,
                topMargin=self.THERMAL_MARGIN,
                bottomMargin=self.THERMAL_MARGIN,
                title=f"Invoice {invoice_number(self.sale)}",
            )
        else:
            doc = SimpleDocTemplate(
                buffer,
                pagesize=A4,
                rightMargin=self.STANDARD_MARGIN,
                leftMargin=self.STANDARD_MARGIN,
                topMargin=self.STANDARD_MARGIN,
                bottomMargin=self.STANDARD_MARGIN,
                title=f"Invoice {invoice_number(self.sale)}",
            )
        doc.build(self._story(thermal))
        pdf = buffer.getvalue()
        buffer.close()
        return pdf

    def _story(self, thermal: bool):
        body = self.thermal_body_style if thermal else self.body_style
        gap = 6 if thermal else 12
        story = []

        story.append(Paragraph(escape(self.profile.shop_name), self.thermal_shop_style if thermal else self.shop_style))
        for info in (
            self.profile.address,
            f"Phone: {self.profile.phone}" if self.profile.phone else None,
            f"GST: {self.profile.gst_number}" if self.profile.gst_number else None,
        ):
            if info:
                story.append(Paragraph(f"<para align='center'>{escape(info)}</para>", body))
        story.append(HRFlowable(width="100%", thickness=1, color=colors.black))
        story.append(Spacer(1, gap))

        story.append(Paragraph(f"Customer: {escape(self.sale.customer_name or WALK_IN)}", body))
        if self.sale.customer_mobile:
            story.append(Paragraph(f"Phone: {escape(self.sale.customer_mobile)}", body))
        story.append(Paragraph(self.sale.created_at.strftime("%d %b %Y, %H:%M"), body))
        story.append(Paragraph(f"<b>Invoice: #{invoice_number(self.sale)}</b>", body))
        story.append(Spacer(1, gap))

        story.append(self._items_table(thermal))
        story.append(Spacer(1, gap))
        story.extend(self._totals(thermal))
        story.append(Spacer(1, gap))
        story.append(Paragraph(f"<para align='center'>{FOOTER}</para>", body))
        return story

    def _items_table(self, thermal: bool) -> Table:
        body = self.thermal_body_style if thermal else self.body_style
        data = [["Item", "Qty", "Price", "Total"]]
        for item in self.sale.items:
            label = escape(item.name)
            note = _weight_note(item)
            if note:
                label += f"<br/><font size='6'>{note}</font>"
            data.append([
                Paragraph(label, body),
                f"x{item.quantity}",
                _money(item.unit_price),
                _money(item.line_total),
            ])
        if thermal:
            col_widths = [32 * mm, 9 * mm, 14 * mm, 15 * mm]
            font_size = 7
        else:
            col_widths = [85 * mm, 20 * mm, 30 * mm, 35 * mm]
            font_size = 9
        table = Table(data, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), font_size),
            ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("LINEBELOW", (0, 0), (-1, 0), 1, colors.black),
            ("LINEBELOW", (0, -1), (-1, -1), 1, colors.black),
        ]))
        return table

    def _totals(self, thermal: bool):
        body = self.thermal_body_style if thermal else self.body_style
        total_style = self.thermal_total_style if thermal else self.total_style
        sale = self.sale
        rows = [f"Subtotal: {CURRENCY}{_money(sale.subtotal)}"]
        if sale.discount_amount > 0:
            rows.append(f"Discount ({sale.discount_percent:g}%): -{CURRENCY}{_money(sale.discount_amount)}")
        if sale.gst_enabled:
            rows.append(f"GST: {CURRENCY}{_money(sale.tax_amount)}")
        elements = [Paragraph(f"<para align='right'>{r}</para>", body) for r in rows]
        elements.append(HRFlowable(width="100%", thickness=1.5, color=colors.black))
        elements.append(Paragraph(f"TOTAL: {CURRENCY}{_money(sale.total)}", total_style))
        elements.append(Paragraph(f"<para align='right'>Payment: {_payment_label(sale)}</para>", body))
        return elements


def render_pdf(sale: Sale, profile: ShopProfile, layout: str = "thermal") -> bytes:
    return ReceiptGenerator(sale, profile).generate_pdf(layout)
