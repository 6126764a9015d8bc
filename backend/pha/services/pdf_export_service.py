"""PDF Export Service for rendering assessment reports."""
import io
import logging
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.flowables import HRFlowable

logger = logging.getLogger(__name__)

DEFAULT_BRAND_COLOR = "#3B82F6"


def _brand_color(content: Dict[str, Any]) -> colors.Color:
    practice = content.get("practice") or {}
    try:
        return colors.HexColor(practice.get("primary_color") or DEFAULT_BRAND_COLOR)
    except ValueError:
        return colors.HexColor(DEFAULT_BRAND_COLOR)


def _score_color(score: Optional[float]) -> colors.Color:
    if score is None:
        return colors.grey
    if score >= 80:
        return colors.HexColor("#059669")
    if score >= 60:
        return colors.HexColor("#D97706")
    return colors.HexColor("#DC2626")


class PDFExportService:
    """Renders stored report content as a PDF document."""

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom paragraph styles for the PDF."""
        self.styles.add(ParagraphStyle(
            name="ReportTitle",
            parent=self.styles["Heading1"],
            fontSize=22,
            textColor=colors.HexColor("#1f2937"),
            spaceAfter=24,
            alignment=TA_CENTER,
        ))

        self.styles.add(ParagraphStyle(
            name="SectionHeader",
            parent=self.styles["Heading2"],
            fontSize=14,
            textColor=colors.HexColor("#1f2937"),
            spaceAfter=12,
            spaceBefore=20,
        ))

        self.styles.add(ParagraphStyle(
            name="ScoreStyle",
            parent=self.styles["Normal"],
            fontSize=28,
            leading=34,
            alignment=TA_CENTER,
        ))

    def generate_report_pdf(self, report_data: Dict[str, Any]) -> bytes:
        """
        Render a report as PDF.

        Args:
            report_data: report content as stored on the report row

        Returns:
            PDF file as bytes
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=72,
            leftMargin=72,
            topMargin=72,
            bottomMargin=18,
        )

        elements = []
        elements.extend(self._create_header(report_data))
        elements.extend(self._create_score_section(report_data))

        categories = report_data.get("categories")
        if categories:
            elements.extend(self._create_category_table(categories))

        if report_data.get("insights"):
            elements.extend(self._create_bullets("Insights", report_data["insights"]))
        elif report_data.get("key_insights"):
            elements.extend(self._create_bullets("Key Insights", report_data["key_insights"]))

        if report_data.get("recommendations"):
            elements.extend(self._create_bullets("Recommendations", report_data["recommendations"]))

        doc.build(elements)
        buffer.seek(0)
        pdf = buffer.read()
        logger.info(
            f"[PDF] Rendered report for assessment "
            f"{report_data.get('metadata', {}).get('assessment_id')}: {len(pdf)} bytes"
        )
        return pdf

    def _create_header(self, data: Dict[str, Any]) -> List:
        elements = []
        brand = _brand_color(data)
        practice = data.get("practice") or {}

        title_style = ParagraphStyle("BrandedTitle", parent=self.styles["ReportTitle"], textColor=brand)
        elements.append(Paragraph(escape(practice.get("name") or "Health Assessment Report"), title_style))

        child = data.get("child") or {}
        assessment = data.get("assessment") or {}
        info = f"<b>Child:</b> {escape(str(child.get('name') or 'N/A'))}<br/>"
        if child.get("age") is not None:
            info += f"<b>Age:</b> {child['age']}<br/>"
        if child.get("gender"):
            info += f"<b>Gender:</b> {escape(str(child['gender']).replace('_', ' ').title())}<br/>"
        info += f"<b>Completed:</b> {escape(str(assessment.get('completed_at') or 'N/A')[:10])}"

        elements.append(Paragraph(info, self.styles["Normal"]))
        elements.append(Spacer(1, 0.3 * inch))
        elements.append(HRFlowable(width="100%", thickness=1, color=brand))
        elements.append(Spacer(1, 0.3 * inch))
        return elements

    def _create_score_section(self, data: Dict[str, Any]) -> List:
        """Brain-O-Meter score and summary overview."""
        elements = [Paragraph("Brain-O-Meter Score", self.styles["SectionHeader"])]

        score = (data.get("assessment") or {}).get("brain_o_meter_score")
        score_style = ParagraphStyle("ScoreColored", parent=self.styles["ScoreStyle"], textColor=_score_color(score))
        elements.append(Paragraph(f"{score if score is not None else '-'} / 100", score_style))
        elements.append(Spacer(1, 0.2 * inch))

        overview = (data.get("summary") or {}).get("overview")
        if overview:
            elements.append(Paragraph(escape(overview), self.styles["Normal"]))
            elements.append(Spacer(1, 0.2 * inch))
        return elements

    def _create_category_table(self, categories: Dict[str, Any]) -> List:
        elements = [Paragraph("Results by Category", self.styles["SectionHeader"])]

        rows = [["Category", "Answered", "Completion", "Score"]]
        for name, category in categories.items():
            percentage = (category.get("statistics") or {}).get("score_percentage")
            rows.append([
                name.replace("_", " ").title(),
                f"{category.get('answered_questions', 0)} / {category.get('total_questions', 0)}",
                f"{category.get('completion_rate', 0):.1f}%",
                f"{percentage:.1f}%" if percentage is not None else "-",
            ])

        table = Table(rows, colWidths=[2.5 * inch, 1.2 * inch, 1.2 * inch, 1 * inch])
        table.setStyle(TableStyle([
            # Header row
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("ALIGN", (1, 0), (-1, -1), "CENTER"),
            # Data rows
            ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F3F4F6")]),
        ]))
        elements.append(table)
        elements.append(Spacer(1, 0.3 * inch))
        return elements

    def _create_bullets(self, title: str, items: List[str]) -> List:
        elements = [Paragraph(title, self.styles["SectionHeader"])]
        for item in items:
            elements.append(Paragraph(f"&bull; {escape(str(item))}", self.styles["Normal"]))
            elements.append(Spacer(1, 0.08 * inch))
        return elements
