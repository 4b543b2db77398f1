"""
Lease document generation.

A landlord's lease template body is rendered with the lease's terms and
laid out as a PDF with reportlab. The PDF is what tenants and landlords
sign through the signing links.
"""

import io
from datetime import date
from typing import Any, Optional
from xml.sax.saxutils import escape

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle,
)

from propertyflow.models.landlord import Landlord
from propertyflow.models.property import Property, Unit
from propertyflow.services.email import format_cents

# Template bodies come from landlords, so they render in a sandbox
_BODY_ENV = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False)


class LeaseRenderError(Exception):
    """Raised when a template body cannot be rendered or laid out."""


def _format_date(value: Optional[date]) -> str:
    return value.strftime("%B %d, %Y") if value else ""


def build_lease_context(
    landlord: Landlord,
    property: Property,
    unit: Unit,
    tenant_name: str,
    tenant_email: str,
    start_date: date,
    end_date: Optional[date],
    rent_amount_cents: int,
    billing_day_of_month: int,
) -> dict[str, Any]:
    """Placeholder values available to lease template bodies."""
    address = ", ".join(
        part for part in (
            property.address_line1,
            property.address_line2,
            property.city,
            f"{property.state} {property.zip_code}",
        ) if part
    )
    deposit_cents = rent_amount_cents * (landlord.security_deposit_months or 0)
    return {
        "landlord_name": landlord.name,
        "landlord_email": landlord.company_email or "",
        "landlord_phone": landlord.company_phone or "",
        "landlord_address": landlord.company_address or "",
        "tenant_name": tenant_name,
        "tenant_email": tenant_email,
        "property_name": property.name,
        "property_address": address,
        "unit_name": unit.name,
        "start_date": _format_date(start_date),
        "end_date": _format_date(end_date),
        "is_month_to_month": end_date is None,
        "term": (
            f"{_format_date(start_date)} to {_format_date(end_date)}"
            if end_date else f"Month-to-month beginning {_format_date(start_date)}"
        ),
        "rent": format_cents(rent_amount_cents),
        "security_deposit": format_cents(deposit_cents),
        "billing_day_of_month": billing_day_of_month,
    }


def render_template_body(body: str, context: dict[str, Any]) -> str:
    try:
        return _BODY_ENV.from_string(body).render(**context)
    except TemplateError as e:
        raise LeaseRenderError(f"Lease template could not be rendered: {e}") from e


class LeasePDFGenerator:
    """Lays out a rendered lease as a signable PDF."""

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        self.styles.add(ParagraphStyle(
            name='LeaseTitle',
            parent=self.styles['Heading1'],
            fontSize=20,
            spaceAfter=6,
            alignment=TA_CENTER,
            textColor=colors.HexColor('#1a1a2e'),
        ))
        self.styles.add(ParagraphStyle(
            name='LeaseSubtitle',
            parent=self.styles['Normal'],
            fontSize=11,
            spaceAfter=18,
            alignment=TA_CENTER,
            textColor=colors.HexColor('#666666'),
        ))
        self.styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=self.styles['Heading2'],
            fontSize=13,
            spaceBefore=16,
            spaceAfter=8,
            textColor=colors.HexColor('#1a1a2e'),
        ))
        self.styles.add(ParagraphStyle(
            name='Clause',
            parent=self.styles['Normal'],
            fontSize=10,
            leading=14,
            spaceAfter=8,
        ))

    def generate(self, title: str, body: str, context: dict[str, Any]) -> bytes:
        """Return PDF bytes for a rendered lease body."""
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=0.75*inch,
            leftMargin=0.75*inch,
            topMargin=0.75*inch,
            bottomMargin=0.75*inch,
            title=title,
        )

        story = []
        story.append(Paragraph(escape(title), self.styles['LeaseTitle']))
        story.append(Paragraph(
            escape(f"{context['property_name']} - Unit {context['unit_name']}"),
            self.styles['LeaseSubtitle'],
        ))

        story.append(Paragraph("LEASE SUMMARY", self.styles['SectionHeader']))
        story.append(HRFlowable(width="100%", thickness=1, color=colors.HexColor('#e0e0e0')))
        summary = [
            ["Landlord:", context["landlord_name"]],
            ["Tenant:", context["tenant_name"]],
            ["Premises:", f"{context['property_address']}, Unit {context['unit_name']}"],
            ["Term:", context["term"]],
            ["Monthly Rent:", context["rent"]],
            ["Rent Due:", f"Day {context['billing_day_of_month']} of each month"],
            ["Security Deposit:", context["security_deposit"]],
        ]
        summary_table = Table(summary, colWidths=[1.8*inch, 4.9*inch])
        summary_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('TEXTCOLOR', (0, 0), (0, -1), colors.HexColor('#666666')),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        story.append(summary_table)

        story.append(Paragraph("TERMS AND CONDITIONS", self.styles['SectionHeader']))
        story.append(HRFlowable(width="100%", thickness=1, color=colors.HexColor('#e0e0e0')))
        for block in body.split("\n\n"):
            block = block.strip()
            if block:
                story.append(Paragraph(escape(block).replace("\n", "<br/>"), self.styles['Clause']))

        story.append(Paragraph("SIGNATURES", self.styles['SectionHeader']))
        story.append(HRFlowable(width="100%", thickness=1, color=colors.HexColor('#e0e0e0')))
        signatures = Table(
            [
                ["Landlord Signature", "Date"],
                ["", ""],
                [context["landlord_name"], ""],
                ["Tenant Signature", "Date"],
                ["", ""],
                [context["tenant_name"], ""],
            ],
            colWidths=[4.5*inch, 2.2*inch],
            rowHeights=[14, 30, 18, 14, 30, 18],
        )
        signatures.setStyle(TableStyle([
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.HexColor('#888888')),
            ('TEXTCOLOR', (0, 3), (-1, 3), colors.HexColor('#888888')),
            ('LINEBELOW', (0, 1), (-1, 1), 0.75, colors.black),
            ('LINEBELOW', (0, 4), (-1, 4), 0.75, colors.black),
        ]))
        story.append(Spacer(1, 0.1*inch))
        story.append(signatures)

        try:
            doc.build(story)
        except Exception as e:
            raise LeaseRenderError(f"Lease PDF layout failed: {e}") from e
        return buffer.getvalue()


def generate_lease_pdf(template_name: str, template_body: str, context: dict[str, Any]) -> bytes:
    body = render_template_body(template_body, context)
    return LeasePDFGenerator().generate(template_name, body, context)
