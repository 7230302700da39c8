"""PDF rendering for assembled expense reports."""
import logging
import threading
from datetime import date
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from .bucketing import WEEKLY
from .categories import category_label
from .errors import RenderCancelled, RenderError

IDLE = "idle"
WRITING = "writing"
FINALIZED = "finalized"
FAILED = "failed"

REPORT_TITLE = "Expense Report"
REPORT_FILENAME = "expense-report.pdf"
NO_CATEGORIES_TEXT = "No categories to report."
NO_TRENDS_TEXT = "No trends for the selected period."

_MARGIN = 50

LOGGER = logging.getLogger("expense_insights.renderer")


def _money(value):
    return "$" + str(Decimal(value).quantize(Decimal("0.01")))


def _trend_label(key, period):
    if period == WEEKLY:
        return f"Week {key.period_index}, {key.year}"
    return f"{key.period_index:02d}/{key.year}"


class _ChunkSink:
    """File-like target for the PDF writer.

    Holds whatever the writer emits until the render finishes. reportlab saves
    the finished document in a single write, so cancellation is seen at that
    write or at the final check, not partway through the byte stream.
    """

    name = "<expense-report>"

    def __init__(self):
        self.chunks = []
        self.cancelled = False

    def write(self, data):
        if self.cancelled:
            raise RenderCancelled("Report rendering was cancelled")
        if isinstance(data, str):
            data = data.encode("latin-1")
        self.chunks.append(bytes(data))
        return len(data)

    def flush(self):
        if self.cancelled:
            raise RenderCancelled("Report rendering was cancelled")

    def release(self):
        self.chunks = []


class ReportRenderer:
    """Single-use writer that turns a ReportModel into PDF bytes.

    States move idle -> writing -> finalized on success or
    idle -> writing -> failed on error or abort. Both end states are final.
    """

    def __init__(self, pagesize=letter, generated_on=None):
        self._pagesize = pagesize
        self._generated_on = generated_on
        self._sink = _ChunkSink()
        self._lock = threading.Lock()
        self._state = IDLE
        self._styles = self._build_styles()

    @property
    def state(self):
        return self._state

    def render(self, report) -> bytes:
        with self._lock:
            if self._state != IDLE:
                raise RenderError(f"Renderer cannot be reused (state: {self._state})")
            self._state = WRITING

        try:
            doc = SimpleDocTemplate(
                self._sink,
                pagesize=self._pagesize,
                leftMargin=_MARGIN,
                rightMargin=_MARGIN,
                topMargin=_MARGIN,
                bottomMargin=_MARGIN,
                title=REPORT_TITLE,
                invariant=True,
            )
            doc.build(
                self._story(report),
                onFirstPage=self._draw_footer,
                onLaterPages=self._draw_footer,
            )
        except RenderError:
            self._fail()
            raise
        except Exception as exc:
            self._fail()
            LOGGER.exception("Report rendering failed: %s", exc)
            raise RenderError(f"Report rendering failed: {exc}") from exc

        with self._lock:
            if self._sink.cancelled:
                raise RenderCancelled("Report rendering was cancelled")
            data = b"".join(self._sink.chunks)
            self._sink.release()
            if not data:
                self._state = FAILED
                raise RenderError("Report writer produced no output")
            self._state = FINALIZED

        LOGGER.info("Report rendered: %s bytes", len(data))
        return data

    def abort(self):
        with self._lock:
            if self._state in (FINALIZED, FAILED):
                return
            self._sink.cancelled = True
            self._sink.release()
            self._state = FAILED
        LOGGER.warning("Report rendering aborted")

    def _fail(self):
        with self._lock:
            self._sink.release()
            self._state = FAILED

    def _build_styles(self):
        base = getSampleStyleSheet()
        return {
            "title": ParagraphStyle(
                "ReportTitle",
                parent=base["Title"],
                fontSize=25,
                leading=30,
                alignment=TA_CENTER,
            ),
            "summary": ParagraphStyle(
                "ReportSummary",
                parent=base["Normal"],
                fontSize=14,
                leading=18,
            ),
            "heading": ParagraphStyle(
                "ReportHeading",
                parent=base["Heading2"],
                fontSize=16,
                leading=20,
            ),
            "line": ParagraphStyle(
                "ReportLine",
                parent=base["Normal"],
                fontSize=12,
                leading=15,
            ),
        }

    def _story(self, report):
        styles = self._styles
        generated = self._generated_on or date.today()
        period = report.generated_period

        story = [
            Paragraph(REPORT_TITLE, styles["title"]),
            Spacer(1, 12),
            Paragraph(escape(f"User: {report.owner_label}"), styles["summary"]),
            Paragraph(f"Total Spent: {_money(report.grand_total)}", styles["summary"]),
            Paragraph(escape(f"Report Period: {period}"), styles["summary"]),
            Paragraph(
                f"Generated: {generated.month}/{generated.day}/{generated.year}",
                styles["summary"],
            ),
            Spacer(1, 12),
            Paragraph("<u>Category Breakdown:</u>", styles["heading"]),
        ]

        if report.category_breakdown:
            for row in report.category_breakdown:
                text = f"{category_label(row.key.name)}: {_money(row.total)}"
                story.append(Paragraph(escape(text), styles["line"]))
        else:
            story.append(Paragraph(NO_CATEGORIES_TEXT, styles["line"]))

        story.append(Spacer(1, 12))
        story.append(Paragraph(f"<u>Trends ({escape(period)}):</u>", styles["heading"]))

        if report.trend_breakdown:
            for row in report.trend_breakdown:
                text = f"{_trend_label(row.key, period)}: {_money(row.total)}"
                story.append(Paragraph(escape(text), styles["line"]))
        else:
            story.append(Paragraph(NO_TRENDS_TEXT, styles["line"]))

        return story

    def _draw_footer(self, canvas, doc):
        canvas.saveState()
        canvas.setFont("Helvetica", 9)
        width, _ = doc.pagesize
        canvas.drawRightString(width - _MARGIN, _MARGIN / 2, f"Page {doc.page}")
        canvas.restoreState()


def render_report(report, generated_on=None) -> bytes:
    return ReportRenderer(generated_on=generated_on).render(report)
