from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from xml.sax.saxutils import escape

import structlog
from PIL import UnidentifiedImageError
from reportlab.graphics.shapes import Drawing, Rect
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas as pdf_canvas
from reportlab.platypus import (
    HRFlowable,
    Image as RLImage,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)
from reportlab.platypus.doctemplate import LayoutError

from sunflower_reports.core.enums import HealthStatus
from sunflower_reports.core.errors import DocumentAssemblyFailed
from sunflower_reports.schemas.record import AnalysisRecord
from sunflower_reports.services.presenters import (
    NOT_AVAILABLE,
    format_percent,
    format_seconds,
    health_status,
    listed_predictions,
    split_timestamp,
)
from sunflower_reports.services.transcoder import TranscodedImage

logger = structlog.get_logger(__name__)

REPORT_TITLE = "Sunflower Disease Analysis Report"
HISTORY_PDF_FILENAME = "sunflower-analysis-complete-history.pdf"

IMAGE_LOAD_FAILED_NOTE = "Image could not be loaded for PDF generation"
NO_IMAGE_NOTE = "No image available"
DEFAULT_AUTHOR = "Sunflower Reports"

# Bulk layout offsets, in millimetres from the top edge of the page.
HISTORY_FIRST_OFFSET = 110.0
HISTORY_PAGE_TOP = 30.0
HISTORY_PAGE_THRESHOLD = 220.0
HISTORY_BLOCK_ADVANCE = 70.0

_ASSEMBLY_ERRORS = (LayoutError, UnidentifiedImageError, OSError, ValueError, TypeError, KeyError)

_TABLE_GRID = [
    ("BOX", (0, 0), (-1, -1), 0.75, colors.HexColor("#D5DEE8")),
    ("LINEBELOW", (0, 0), (-1, -2), 0.45, colors.HexColor("#E3EAF2")),
    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ("LEFTPADDING", (0, 0), (-1, -1), 6),
    ("RIGHTPADDING", (0, 0), (-1, -1), 6),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
]


def record_pdf_filename(record_id: int) -> str:
    return f"sunflower-analysis-{record_id}.pdf"


def record_result_rows(record: AnalysisRecord) -> list[tuple[str, str]]:
    info = record.image_info
    return [
        ("Health Status", health_status(record.predicted_class).value),
        ("Predicted Class", record.predicted_class),
        ("Confidence", format_percent(record.confidence)),
        ("Processing Time", format_seconds(info.processing_time_seconds)),
        ("Image Size", info.size or NOT_AVAILABLE),
    ]


def prediction_rows(record: AnalysisRecord) -> list[tuple[str, str, float]]:
    return [
        (label, format_percent(score), score)
        for label, score in listed_predictions(record.all_predictions)
    ]


def _s(value) -> str:
    return NOT_AVAILABLE if value is None or value == "" else escape(str(value))


def _styles():
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="SunTitle",
            parent=styles["Title"],
            fontName="Helvetica-Bold",
            fontSize=19,
            leading=23,
            textColor=colors.HexColor("#0B1320"),
        )
    )
    styles.add(
        ParagraphStyle(
            name="H2",
            parent=styles["Heading2"],
            fontName="Helvetica-Bold",
            fontSize=12.8,
            leading=17,
            spaceBefore=4,
            spaceAfter=6,
            textColor=colors.HexColor("#0B1320"),
        )
    )
    styles.add(
        ParagraphStyle(
            name="Small",
            parent=styles["BodyText"],
            fontName="Helvetica",
            fontSize=9.2,
            leading=12.8,
            textColor=colors.HexColor("#374151"),
        )
    )
    return styles


def record_story(
    record: AnalysisRecord,
    *,
    image: TranscodedImage | None = None,
    image_note: str | None = None,
    styles=None,
) -> list[object]:
    """Flowables for the single-record report, in page order.

    The image and the results summary share a two-column block. The
    prediction table follows it at full width so long label lists split
    across pages row by row.
    """
    styles = styles or _styles()

    def _bar(prob: float, *, width: float = 40 * mm, height: float = 3.5 * mm) -> Drawing:
        p = max(0.0, min(1.0, float(prob)))
        d = Drawing(width, height)
        d.add(Rect(0, 0, width, height, fillColor=colors.HexColor("#E5E7EB"), strokeColor=None))
        d.add(Rect(0, 0, width * p, height, fillColor=colors.HexColor("#CA8A04"), strokeColor=None))
        return d

    def _status_color(status: str) -> str:
        return "#065F46" if status == HealthStatus.HEALTHY.value else "#991B1B"

    def _callout(text: str, *, col_width: float) -> Table:
        table = Table([[Paragraph(_s(text), styles["Small"])]], colWidths=[col_width])
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F8FAFC")),
                    ("BOX", (0, 0), (-1, -1), 0.8, colors.HexColor("#D8E1EB")),
                    ("LEFTPADDING", (0, 0), (-1, -1), 9),
                    ("RIGHTPADDING", (0, 0), (-1, -1), 9),
                    ("TOPPADDING", (0, 0), (-1, -1), 7),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 7),
                ]
            )
        )
        return table

    date, time = split_timestamp(record.created_at)

    story: list[object] = []
    story.append(Paragraph(REPORT_TITLE, styles["SunTitle"]))
    story.append(Spacer(1, 6))

    header_rows = [
        ["Analysis ID", f"#{record.id}"],
        ["Date", f"{date} • {time}" if time else (date or NOT_AVAILABLE)],
        ["Image", Paragraph(_s(record.image_info.filename), styles["Small"])],
    ]
    header_tbl = Table(header_rows, colWidths=[30 * mm, 144 * mm])
    header_tbl.setStyle(
        TableStyle(
            [
                ("FONT", (0, 0), (-1, -1), "Helvetica", 9),
                ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 9),
                ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#F5F8FC")),
                *_TABLE_GRID,
            ]
        )
    )
    story.append(header_tbl)
    story.append(Spacer(1, 10))

    left_width = 84 * mm
    right_width = 90 * mm
    if image is not None:
        left_cell = RLImage(BytesIO(image.to_bytes()), width=image.width * mm, height=image.height * mm)
        left_cell.hAlign = "LEFT"
    else:
        note = image_note or (NO_IMAGE_NOTE if record.image_ref is None else IMAGE_LOAD_FAILED_NOTE)
        left_cell = _callout(note, col_width=left_width - 6 * mm)

    results: list[object] = [Paragraph("Analysis Results", styles["H2"])]
    result_rows = []
    for label, value in record_result_rows(record):
        if label == "Health Status":
            cell = Paragraph(f'<font color="{_status_color(value)}"><b>{_s(value)}</b></font>', styles["Small"])
        else:
            cell = Paragraph(_s(value), styles["Small"])
        result_rows.append([label, cell])
    results_tbl = Table(result_rows, colWidths=[32 * mm, 56 * mm])
    results_tbl.setStyle(
        TableStyle(
            [
                ("FONT", (0, 0), (-1, -1), "Helvetica", 9),
                ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 9),
                ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#F5F8FC")),
                *_TABLE_GRID,
            ]
        )
    )
    results.append(results_tbl)

    body = Table([[left_cell, results]], colWidths=[left_width, right_width])
    body.setStyle(
        TableStyle(
            [
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
                ("RIGHTPADDING", (0, 0), (-1, -1), 0),
            ]
        )
    )
    story.append(body)
    story.append(Spacer(1, 10))
    story.append(Paragraph("All Predictions", styles["H2"]))

    predictions = prediction_rows(record)
    if predictions:
        pred_rows = [
            [Paragraph(_s(label), styles["Small"]), percent, _bar(score)]
            for label, percent, score in predictions
        ]
        pred_tbl = Table(pred_rows, colWidths=[104 * mm, 24 * mm, 46 * mm], splitByRow=1)
        pred_tbl.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (-1, -1), "Helvetica", 9),
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    ("ROWBACKGROUNDS", (0, 0), (-1, -1), [colors.white, colors.HexColor("#FCFDFE")]),
                    *_TABLE_GRID,
                ]
            )
        )
        story.append(pred_tbl)
    else:
        story.append(Paragraph("No prediction data available", styles["Small"]))

    story.append(Spacer(1, 12))
    story.append(HRFlowable(width="100%", thickness=0.6, color=colors.HexColor("#E5E7EB")))
    return story


def render_record_pdf(
    record: AnalysisRecord,
    *,
    image: TranscodedImage | None = None,
    image_note: str | None = None,
    author: str = DEFAULT_AUTHOR,
) -> bytes:
    """Build the single-record report.

    ``image`` is already bounded to the report box in millimetres. When it is
    missing the left column carries ``image_note`` instead, and the document
    is still produced.
    """
    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    def on_page(c, d):
        w, h = A4
        c.saveState()
        c.setStrokeColor(colors.HexColor("#D5DEE8"))
        c.setLineWidth(0.9)
        c.line(d.leftMargin, h - d.topMargin + 14, w - d.rightMargin, h - d.topMargin + 14)
        c.setFillColor(colors.HexColor("#6B7280"))
        c.setFont("Helvetica", 8.6)
        c.drawString(d.leftMargin, h - d.topMargin + 18, "Sunflower Disease Analysis")
        c.drawRightString(w - d.rightMargin, h - d.topMargin + 18, generated_at)
        c.setFillColor(colors.HexColor("#9CA3AF"))
        c.setFont("Helvetica", 8)
        c.drawRightString(w - d.rightMargin, d.bottomMargin - 10, f"Page {c.getPageNumber()}")
        c.restoreState()

    try:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=18 * mm,
            rightMargin=18 * mm,
            topMargin=18 * mm,
            bottomMargin=16 * mm,
            title=f"{REPORT_TITLE} #{record.id}",
            author=author,
        )
        story = record_story(record, image=image, image_note=image_note)
        doc.build(story, onFirstPage=on_page, onLaterPages=on_page)
    except _ASSEMBLY_ERRORS as exc:
        logger.error("record_pdf_assembly_failed", record_id=record.id, error=str(exc))
        raise DocumentAssemblyFailed(f"Failed to build PDF for analysis #{record.id}") from exc

    buffer.seek(0)
    return buffer.read()


@dataclass(frozen=True)
class HistoryBlock:
    record: AnalysisRecord
    page: int
    offset: float


def plan_history_layout(
    records: Sequence[AnalysisRecord],
    *,
    first_offset: float = HISTORY_FIRST_OFFSET,
    page_top: float = HISTORY_PAGE_TOP,
    threshold: float = HISTORY_PAGE_THRESHOLD,
    advance: float = HISTORY_BLOCK_ADVANCE,
) -> list[HistoryBlock]:
    blocks: list[HistoryBlock] = []
    page = 1
    offset = first_offset
    for record in records:
        if offset > threshold:
            page += 1
            offset = page_top
        blocks.append(HistoryBlock(record=record, page=page, offset=offset))
        offset += advance
    return blocks


def render_history_pdf(
    records: Sequence[AnalysisRecord],
    *,
    generated_at: datetime | None = None,
    author: str = DEFAULT_AUTHOR,
) -> bytes:
    """Build the bulk history summary. Images are never embedded here."""
    stamp = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S")
    _, page_h = A4

    def _y(offset: float) -> float:
        return page_h - offset * mm

    try:
        buffer = BytesIO()
        c = pdf_canvas.Canvas(buffer, pagesize=A4)
        c.setTitle("Sunflower Disease Analysis - Complete History")
        c.setAuthor(author)

        def _finish_page() -> None:
            c.setFillColor(colors.HexColor("#9CA3AF"))
            c.setFont("Helvetica", 8)
            c.drawRightString(A4[0] - 18 * mm, 10 * mm, f"Page {c.getPageNumber()}")
            c.setFillColor(colors.black)
            c.showPage()

        c.setFont("Helvetica-Bold", 24)
        c.drawString(20 * mm, _y(30), "Sunflower Disease Analysis")
        c.setFont("Helvetica", 16)
        c.drawString(20 * mm, _y(50), "Complete History Report")
        c.setFont("Helvetica", 12)
        c.drawString(20 * mm, _y(70), f"Generated on: {stamp}")
        c.drawString(20 * mm, _y(85), f"Total Analyses: {len(records)}")

        current_page = 1
        for block in plan_history_layout(records):
            if block.page != current_page:
                _finish_page()
                current_page = block.page

            record = block.record
            date, time = split_timestamp(record.created_at)
            c.setFont("Helvetica-Bold", 14)
            c.drawString(20 * mm, _y(block.offset), f"Analysis #{record.id}")
            c.setFont("Helvetica", 10)
            detail_top = block.offset + 15
            c.drawString(25 * mm, _y(detail_top), f"Date: {date} {time}".rstrip())
            c.drawString(25 * mm, _y(detail_top + 12), f"Status: {health_status(record.predicted_class).value}")
            c.drawString(25 * mm, _y(detail_top + 24), f"Confidence: {format_percent(record.confidence)}")
            c.drawString(25 * mm, _y(detail_top + 36), f"Class: {record.predicted_class}")

        _finish_page()
        c.save()
    except _ASSEMBLY_ERRORS as exc:
        logger.error("history_pdf_assembly_failed", record_count=len(records), error=str(exc))
        raise DocumentAssemblyFailed("Failed to build the complete history PDF") from exc

    buffer.seek(0)
    return buffer.read()
