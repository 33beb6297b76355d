"""PDF export of an ImportReport (reportlab)."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from rosterlink.ingestion.matcher import MatchStrategy
from rosterlink.ingestion.report import ImportReport

# Error lists on large files run to thousands of lines.
MAX_PDF_ERRORS = 200


def _rate_color(rate):
    if rate >= 0.95:
        return colors.HexColor('#d1fae5')
    if rate >= 0.80:
        return colors.HexColor('#fef3c7')
    return colors.HexColor('#fecaca')


def generate_report_pdf(report: ImportReport, max_errors: int = MAX_PDF_ERRORS) -> BytesIO:
    """Render the matching report as a one-file PDF; returns a rewound buffer."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, topMargin=0.75*inch, bottomMargin=0.75*inch)
    story = []

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'ReportTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#1e3a8a'),
        spaceAfter=6,
        alignment=TA_CENTER
    )
    subtitle_style = ParagraphStyle(
        'ReportSubtitle',
        parent=styles['Normal'],
        fontSize=11,
        textColor=colors.HexColor('#6b7280'),
        spaceAfter=20,
        alignment=TA_CENTER
    )
    heading_style = ParagraphStyle(
        'ReportHeading',
        parent=styles['Heading2'],
        fontSize=14,
        textColor=colors.HexColor('#1e3a8a'),
        spaceBefore=12,
        spaceAfter=8
    )
    body_style = ParagraphStyle(
        'ReportBody',
        parent=styles['Normal'],
        fontSize=9,
        textColor=colors.HexColor('#1f2937'),
        spaceAfter=3,
        leading=12
    )

    story.append(Paragraph("Roster Matching Report", title_style))
    story.append(Paragraph(
        escape(f"{report.source} | {report.dataset_type} | {report.timestamp}"), subtitle_style
    ))

    # Match-rate callout box
    callout = Table([[f"Match rate: {report.match_rate:.1%}"]], colWidths=[6.5*inch])
    callout.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), _rate_color(report.match_rate)),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#1f2937')),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 14),
        ('TOPPADDING', (0, 0), (-1, -1), 12),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 12),
    ]))
    story.append(callout)
    story.append(Spacer(1, 0.3*inch))

    # Counts
    story.append(Paragraph("ROW COUNTS", heading_style))
    counts = [
        ["Total rows", str(report.total_rows)],
        ["Matched rows", str(report.matched_rows)],
        ["Unmatched rows", str(report.unmatched_rows)],
        ["Records produced", str(report.processed_records)],
    ]
    story.append(_grid_table(counts))

    story.append(Paragraph("MATCHES BY STRATEGY", heading_style))
    by_strategy = [["Strategy", "Rows"]] + [
        [s.value, str(report.count(s))] for s in MatchStrategy
    ]
    story.append(_grid_table(by_strategy, header=True))

    if report.warnings:
        story.append(Paragraph("WARNINGS", heading_style))
        for warning in report.warnings:
            story.append(Paragraph(escape(warning), body_style))

    story.append(Paragraph("ERRORS", heading_style))
    if not report.errors:
        story.append(Paragraph("None", body_style))
    for error in report.errors[:max_errors]:
        story.append(Paragraph(escape(error), body_style))
    if len(report.errors) > max_errors:
        story.append(Paragraph(
            f"<i>… {len(report.errors) - max_errors} more errors not shown</i>", body_style
        ))

    doc.build(story)
    buffer.seek(0)
    return buffer


def _grid_table(rows, header=False):
    table = Table(rows, colWidths=[3.5*inch, 1.5*inch], hAlign='LEFT')
    style = [
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#d1d5db')),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
    ]
    if header:
        style += [
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e0e7ff')),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ]
    table.setStyle(TableStyle(style))
    return table


def write_report_pdf(report: ImportReport, path: str | Path, max_errors: Optional[int] = None) -> Path:
    path = Path(path)
    buffer = generate_report_pdf(report, max_errors if max_errors is not None else MAX_PDF_ERRORS)
    path.write_bytes(buffer.getvalue())
    return path
