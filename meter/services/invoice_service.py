"""
Invoice Generation Service.

Architecture Decision: Template Pattern
Text invoices are rendered from a Jinja2 template so users can customize the
layout without changing code. PDF invoices are laid out with ReportLab.
"""

import datetime
import logging
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Dict, List, Optional
from xml.sax.saxutils import escape

from jinja2 import Environment, FileSystemLoader
from pydantic import BaseModel
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from meter.domain.errors import InvoiceError, NotFoundError
from meter.domain.models import Client, InvoiceSettings, Project, TimeEntry
from meter.infra.clock import Clock, SystemClock
from meter.infra.repository import (
    ClientRepository, ProjectRepository, SettingsRepository, TimeEntryRepository,
)
from meter.utils import get_resource_path

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

INVOICE_FORMATS = ("pdf", "text")


class ProjectSection(BaseModel):
    """All entries of one project on an invoice"""
    project: str
    rate: Optional[Decimal] = None
    currency: str = "$"
    entries: List[TimeEntry]
    hours: Decimal
    amount: Optional[Decimal] = None


class Invoice(BaseModel):
    number: int
    year: int
    month: int
    date_issued: datetime.date
    due_date: datetime.date
    payment_terms: str
    settings: InvoiceSettings
    client: Optional[Client] = None
    sections: List[ProjectSection]
    currency: str = "$"
    total_hours: Decimal
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal

    @property
    def period(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def has_rates(self) -> bool:
        return any(section.rate is not None for section in self.sections)

    @property
    def entry_ids(self) -> List[int]:
        return [e.id for section in self.sections for e in section.entries if e.id is not None]


class InvoiceResult(BaseModel):
    file_path: Path
    invoice: Invoice


def filter_entries_by_month(entries: List[TimeEntry], year: int, month: int) -> List[TimeEntry]:
    """Entries whose end falls in the given UTC month"""
    return [
        e for e in entries
        if e.ended_at.astimezone(datetime.timezone.utc).year == year
        and e.ended_at.astimezone(datetime.timezone.utc).month == month
    ]


def calculate_due_date(payment_terms: str, issued: datetime.date) -> datetime.date:
    """
    Due date from payment terms: "Net 15", "Net 30" and "Net 60" are understood,
    anything else is due on receipt.
    """
    terms = payment_terms.lower()
    for days in (15, 30, 60):
        if f"net {days}" in terms:
            return issued + datetime.timedelta(days=days)
    return issued


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class InvoiceService:
    """
    Builds invoices from time entries and writes them as text or PDF.
    """

    def __init__(self, invoice_dir: Path,
                 template_dir: Optional[Path] = None,
                 entry_repo: Optional[TimeEntryRepository] = None,
                 project_repo: Optional[ProjectRepository] = None,
                 client_repo: Optional[ClientRepository] = None,
                 settings_repo: Optional[SettingsRepository] = None,
                 clock: Optional[Clock] = None):
        """
        Initialize the invoice service.

        Args:
            invoice_dir: Where invoice files are written
            template_dir: Directory containing Jinja2 templates
        """
        if template_dir is None:
            template_dir = get_resource_path("meter/resources/templates")

        self.invoice_dir = Path(invoice_dir)
        self.template_dir = template_dir
        self.clock = clock or SystemClock()

        self.entry_repo = entry_repo or TimeEntryRepository()
        self.project_repo = project_repo or ProjectRepository()
        self.client_repo = client_repo or ClientRepository()
        self.settings_repo = settings_repo or SettingsRepository()

        # Setup Jinja2 environment
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True
        )

        # Add custom filters
        self.env.filters['format_hours'] = self._format_hours
        self.env.filters['format_money'] = self._format_money
        self.env.filters['format_date'] = self._format_date

    @staticmethod
    def _format_hours(hours: Decimal) -> str:
        return f"{hours:.2f}"

    @staticmethod
    def _format_money(amount: Decimal, currency: str = "$") -> str:
        return f"{currency}{amount:,.2f}"

    @staticmethod
    def _format_date(dt: datetime.datetime, fmt: str = "%Y-%m-%d %H:%M") -> str:
        """Format an instant in local time"""
        return dt.astimezone().strftime(fmt)

    def build(self, entries: List[TimeEntry], projects: Dict[str, Project],
              settings: InvoiceSettings, number: int, year: int, month: int,
              client: Optional[Client] = None,
              tax_rate: Optional[Decimal] = None) -> Invoice:
        """
        Group entries by project and compute the totals.

        Args:
            projects: Known projects keyed by lower-cased name (for rates)
            tax_rate: Percent; defaults to the invoice settings
        """
        # Project names are case-insensitive
        grouped: "OrderedDict[str, List[TimeEntry]]" = OrderedDict()
        for entry in sorted(entries, key=lambda e: (e.project.lower(), e.started_at)):
            grouped.setdefault(entry.project.lower(), []).append(entry)

        sections = []
        currencies = set()
        for key, project_entries in grouped.items():
            project = projects.get(key)
            name = project.name if project else project_entries[0].project
            hours = sum((e.duration_hours for e in project_entries), Decimal("0"))
            rate = project.rate if project else None
            currency = project.currency if project else "$"
            amount = _money(hours * rate) if rate is not None else None
            if rate is not None:
                currencies.add(currency)
            sections.append(ProjectSection(
                project=name, rate=rate, currency=currency,
                entries=project_entries, hours=hours, amount=amount
            ))

        if tax_rate is None:
            tax_rate = settings.default_tax_rate

        subtotal = _money(sum((s.amount for s in sections if s.amount is not None), Decimal("0")))
        tax_amount = _money(subtotal * tax_rate / Decimal(100))
        issued = self.clock.now().date()

        return Invoice(
            number=number,
            year=year,
            month=month,
            date_issued=issued,
            due_date=calculate_due_date(settings.default_payment_terms, issued),
            payment_terms=settings.default_payment_terms,
            settings=settings,
            client=client,
            sections=sections,
            currency=currencies.pop() if len(currencies) == 1 else "$",
            total_hours=sum((s.hours for s in sections), Decimal("0")),
            subtotal=subtotal,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            total=subtotal + tax_amount,
        )

    def render_text(self, invoice: Invoice, template_name: str = "invoice.txt.j2") -> str:
        """Render the invoice with a Jinja2 template"""
        template = self.env.get_template(template_name)
        return template.render(invoice=invoice, settings=invoice.settings, client=invoice.client)

    def write_text(self, invoice: Invoice) -> Path:
        """Save the text invoice as invoice_<year>_<month>.txt"""
        self.invoice_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.invoice_dir / f"invoice_{invoice.year}_{invoice.month:02d}.txt"
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(self.render_text(invoice))
        return file_path

    def write_pdf(self, invoice: Invoice) -> Path:
        """Lay out the invoice with ReportLab as invoice_<number>.pdf"""
        self.invoice_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.invoice_dir / f"invoice_{invoice.number:04d}.pdf"

        doc = SimpleDocTemplate(
            str(file_path),
            pagesize=letter,
            leftMargin=0.75 * inch,
            rightMargin=0.75 * inch,
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
            title=f"Invoice #{invoice.number:04d}",
        )
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle('InvoiceTitle', parent=styles['Title'], fontSize=24, alignment=0)
        heading_style = styles['Heading2']
        normal_style = ParagraphStyle('InvoiceNormal', parent=styles['Normal'], fontSize=10)
        small_style = ParagraphStyle('InvoiceSmall', parent=styles['Normal'], fontSize=9)
        bold_style = ParagraphStyle('InvoiceBold', parent=normal_style, fontName='Helvetica-Bold')
        total_style = ParagraphStyle('InvoiceTotal', parent=bold_style, fontSize=12)

        story = [Paragraph(f"INVOICE #{invoice.number:04d}", title_style), Spacer(1, 12)]

        settings = invoice.settings
        if settings.business_name:
            story.append(Paragraph("From:", bold_style))
            story.append(Paragraph(escape(settings.business_name), normal_style))
            for line in settings.formatted_address().splitlines():
                story.append(Paragraph(escape(line), small_style))
            for extra in (settings.email, settings.phone):
                if extra:
                    story.append(Paragraph(escape(extra), small_style))
            if settings.tax_id:
                story.append(Paragraph(f"Tax ID: {escape(settings.tax_id)}", small_style))
            story.append(Spacer(1, 8))

        if invoice.client:
            client = invoice.client
            story.append(Paragraph("Bill To:", bold_style))
            story.append(Paragraph(escape(client.name), normal_style))
            if client.contact_person:
                story.append(Paragraph(f"Attn: {escape(client.contact_person)}", small_style))
            for line in client.formatted_address().splitlines():
                story.append(Paragraph(escape(line), small_style))
            if client.email:
                story.append(Paragraph(escape(client.email), small_style))
            story.append(Spacer(1, 8))

        for line in (f"Invoice Date: {invoice.date_issued:%Y-%m-%d}",
                     f"Due Date: {invoice.due_date:%Y-%m-%d}",
                     f"Terms: {escape(invoice.payment_terms)}",
                     f"Period: {invoice.period}"):
            story.append(Paragraph(line, normal_style))
        story.append(Spacer(1, 16))

        story.append(Paragraph("Services", heading_style))
        for section in invoice.sections:
            story.append(Paragraph(f"Project: {escape(section.project)}", bold_style))
            if section.rate is not None:
                story.append(Paragraph(
                    f"<i>Rate: {escape(section.currency)}{section.rate:.2f}/hr</i>", small_style
                ))
            story.append(Spacer(1, 4))

            rows = [["Description", "Start", "End", "Hours"]]
            for entry in section.entries:
                rows.append([
                    Paragraph(escape(entry.description or "-"), small_style),
                    self._format_date(entry.started_at, "%m/%d %H:%M"),
                    self._format_date(entry.ended_at, "%m/%d %H:%M"),
                    self._format_hours(entry.duration_hours),
                ])
            table = Table(rows, colWidths=[3.2 * inch, 1.2 * inch, 1.2 * inch, 0.8 * inch])
            table.setStyle(TableStyle([
                ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
                ('FONTSIZE', (0, 0), (-1, -1), 8),
                ('LINEBELOW', (0, 0), (-1, 0), 0.5, colors.grey),
                ('ALIGN', (3, 0), (3, -1), 'RIGHT'),
                ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ]))
            story.append(table)
            story.append(Spacer(1, 4))

            if section.amount is not None:
                subtotal_line = (f"{section.hours:.2f} hrs x {section.currency}{section.rate:.2f}"
                                 f" = {self._format_money(section.amount, section.currency)}")
            else:
                subtotal_line = f"{section.hours:.2f} hrs"
            story.append(Paragraph(escape(subtotal_line), bold_style))
            story.append(Spacer(1, 12))

        story.append(Paragraph(
            escape(f"Subtotal: {self._format_money(invoice.subtotal, invoice.currency)}"), normal_style
        ))
        if invoice.tax_rate > 0:
            story.append(Paragraph(
                escape(f"Tax ({invoice.tax_rate:.1f}%): {self._format_money(invoice.tax_amount, invoice.currency)}"),
                normal_style
            ))
        story.append(Spacer(1, 6))
        story.append(Paragraph(
            escape(f"TOTAL DUE: {self._format_money(invoice.total, invoice.currency)}"), total_style
        ))

        if settings.payment_instructions:
            story.append(Spacer(1, 24))
            story.append(Paragraph("Payment Instructions", heading_style))
            for line in settings.payment_instructions.splitlines():
                story.append(Paragraph(escape(line), small_style))

        doc.build(story)
        return file_path

    async def generate(self, year: int, month: int, fmt: str = "pdf",
                       client_name: Optional[str] = None,
                       tax_rate: Optional[Decimal] = None,
                       billed: Optional[bool] = True,
                       mark_billed: bool = False) -> InvoiceResult:
        """
        Build and write the invoice for a month.

        Args:
            fmt: 'pdf' or 'text'
            client_name: Only include projects assigned to this client
            billed: Which entries to include (True = billed, False = pending, None = all)
            mark_billed: Flag the invoiced entries as billed afterwards

        Raises:
            InvoiceError: if there is nothing to invoice, the format is unknown
                or the file cannot be written
            NotFoundError: if the client does not exist
        """
        if fmt not in INVOICE_FORMATS:
            raise InvoiceError(f"Unknown invoice format '{fmt}' (expected one of {', '.join(INVOICE_FORMATS)})")

        entries = await self.entry_repo.list_by_month(year, month, billed=billed)

        client = None
        if client_name:
            client = await self.client_repo.get_by_name(client_name)
            if not client:
                raise NotFoundError(f"Client '{client_name}' not found")
            client_projects = {p.name.lower() for p in await self.project_repo.get_by_client(client.id)}
            entries = [e for e in entries if e.project.lower() in client_projects]

        if not entries:
            raise InvoiceError(f"No entries to invoice for {year}-{month:02d}")

        projects = {p.name.lower(): p for p in await self.project_repo.get_all()}
        settings = await self.settings_repo.load_invoice_settings()
        number = settings.next_invoice_number

        invoice = self.build(entries, projects, settings, number, year, month,
                             client=client, tax_rate=tax_rate)

        try:
            if fmt == "pdf":
                file_path = self.write_pdf(invoice)
            else:
                file_path = self.write_text(invoice)
        except OSError as e:
            raise InvoiceError(f"Could not write invoice #{number:04d}: {e}") from e

        # Only a written invoice uses up its number
        await self.settings_repo.next_invoice_number()
        logger.info(f"Invoice #{number:04d} written to {file_path}")

        if mark_billed:
            count = await self.entry_repo.mark_billed_many(invoice.entry_ids)
            logger.info(f"Marked {count} invoiced entries as billed")

        return InvoiceResult(file_path=file_path, invoice=invoice)
