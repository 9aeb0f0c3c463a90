import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Iterable, Optional, Sequence

from fastapi.templating import Jinja2Templates

from aggregation import LedgerEntry, Totals, totals
from models import CENT, Category, TransactionType

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

DEFAULT_ROWS_PER_PAGE = 28
DEFAULT_MAX_ROWS = 5000
DESCRIPTION_PLACEHOLDER = "-"

TYPE_LABELS = {
    TransactionType.income: "Pemasukan",
    TransactionType.expense: "Pengeluaran",
}

CATEGORY_LABELS = {
    Category.food: "Makanan",
    Category.salary: "Gaji",
    Category.transport: "Transportasi",
    Category.entertainment: "Hiburan",
    Category.health: "Kesehatan",
    Category.shopping: "Belanja",
    Category.bills: "Tagihan",
    Category.investment: "Investasi",
    Category.other: "Lainnya",
}

REPORT_CSS = """
    @page {
        size: A4;
        margin: 18mm 16mm 20mm 16mm;
        @bottom-center {
            content: counter(page) " / " counter(pages);
            font-size: 9px;
            color: #6b7280;
        }
    }

    body {
        font-family: "Helvetica", "Arial", sans-serif;
        font-size: 10px;
        color: #111827;
    }

    table {
        width: 100%;
        border-collapse: collapse;
    }

    th, td {
        padding: 1.5mm 2mm;
        text-align: left;
    }

    th {
        border-bottom: 1px solid #111827;
    }

    td.amount, th.amount {
        text-align: right;
    }

    .page {
        page-break-after: always;
    }

    .page:last-of-type {
        page-break-after: auto;
    }

    .positive {
        color: #16a34a;
    }

    .negative {
        color: #dc2626;
    }
"""


def format_currency(amount: Decimal, include_cents: bool = True) -> str:
    places = CENT if include_cents else Decimal("1")
    value = Decimal(amount).quantize(places, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    text = f"{abs(value):,.2f}" if include_cents else f"{abs(value):,.0f}"
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}Rp {text}"


def category_label(value: object) -> str:
    if isinstance(value, Category):
        return CATEGORY_LABELS[value]
    try:
        return CATEGORY_LABELS[Category(str(value))]
    except ValueError:
        return str(value)


templates.env.filters["currency"] = format_currency


@dataclass(frozen=True)
class ReportRow:
    date: date
    type: TransactionType
    type_label: str
    category: str
    description: str
    amount: str


@dataclass(frozen=True)
class Report:
    title: str
    generated_at: datetime
    pages: list[list[ReportRow]]
    summary: Totals
    total_rows: int
    truncated: bool = False
    app_version: str = "unknown"
    notes: list[str] = field(default_factory=list)

    @property
    def rendered_rows(self) -> int:
        return sum(len(page) for page in self.pages)


def _row(txn: LedgerEntry) -> ReportRow:
    description = getattr(txn, "description", None)
    return ReportRow(
        date=txn.date,
        type=txn.type,
        type_label=TYPE_LABELS.get(txn.type, str(txn.type)),
        category=category_label(txn.category),
        description=(description or "").strip() or DESCRIPTION_PLACEHOLDER,
        amount=format_currency(txn.amount),
    )


def paginate(rows: Sequence[ReportRow], rows_per_page: int) -> list[list[ReportRow]]:
    if rows_per_page < 1:
        raise ValueError("rows_per_page must be at least 1")
    return [
        list(rows[i : i + rows_per_page]) for i in range(0, len(rows), rows_per_page)
    ]


def build_report(
    transactions: Iterable[LedgerEntry],
    title: str,
    generated_at: datetime,
    *,
    rows_per_page: int = DEFAULT_ROWS_PER_PAGE,
    max_rows: int = DEFAULT_MAX_ROWS,
    app_version: str = "unknown",
) -> Report:
    """Lay out a transaction list as fixed-size pages plus a summary.

    The summary covers every transaction passed in, even when the row
    listing is cut at ``max_rows``.
    """
    items = list(transactions)
    rows = [_row(txn) for txn in items[:max_rows]]
    truncated = len(items) > max_rows
    notes = []
    if truncated:
        notes.append(
            f"Showing the first {max_rows} of {len(items)} transactions; "
            "the summary includes all of them."
        )
    return Report(
        title=title,
        generated_at=generated_at,
        pages=paginate(rows, rows_per_page),
        summary=totals(items),
        total_rows=len(items),
        truncated=truncated,
        app_version=app_version,
        notes=notes,
    )


def render_report_html(report: Report) -> str:
    return templates.env.get_template("report.html").render(report=report)


def render_report_pdf(report: Report, base_url: Optional[str] = None) -> bytes:
    try:
        from weasyprint import CSS, HTML
        from weasyprint.text.fonts import FontConfiguration
    except Exception as exc:
        raise RuntimeError(
            "PDF export requires WeasyPrint system dependencies; "
            "install them for your OS and retry."
        ) from exc

    start_time = datetime.now()
    font_config = FontConfiguration()
    css = CSS(string=REPORT_CSS, font_config=font_config)
    pdf_bytes = HTML(string=render_report_html(report), base_url=base_url).write_pdf(
        stylesheets=[css], font_config=font_config
    )
    pdf_duration = (datetime.now() - start_time).total_seconds()
    logger.info(
        f"report_generated: rows={report.rendered_rows} pages={len(report.pages)} "
        f"pdf_size_bytes={len(pdf_bytes)} pdf_duration={pdf_duration:.2f}s"
    )
    return pdf_bytes
