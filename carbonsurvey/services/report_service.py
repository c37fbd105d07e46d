"""
Carbon Survey — Household footprint report generation.

Two steps:

  build_report()  Joins a conducted survey to its template and produces a
                  plain dict with display-formatted figures.
  render_pdf()    Lays that dict out as an A4 PDF with reportlab.

All rounding here is cosmetic.  Stored equivalents and totals are read,
never rewritten.
"""

from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Any, Optional
from xml.sax.saxutils import escape

import structlog
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from carbonsurvey.models import Survey, SurveyTemplate

logger = structlog.get_logger("carbonsurvey.report_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

DISPLAY_DECIMALS: int = 2
CO2_UNIT: str = "kg CO2"

_HEADER_BG = colors.HexColor("#2e7d32")
_GRID = colors.HexColor("#cbd5e0")
_ROW_ALT_BG = colors.HexColor("#f1f8e9")


def format_kg(value: Optional[float], decimals: int = DISPLAY_DECIMALS) -> str:
    """Format a kg CO2 figure for display (``1234.5 -> '1,234.50'``)."""
    if value is None:
        return "-"
    return f"{value:,.{decimals}f}"


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:g}"


class ReportService:
    """Builds and renders per-household carbon footprint reports."""

    def __init__(self) -> None:
        self.styles = getSampleStyleSheet()
        self.styles.add(ParagraphStyle(
            name="ReportTitle",
            parent=self.styles["Title"],
            fontSize=20,
            textColor=_HEADER_BG,
            alignment=TA_CENTER,
            spaceAfter=6,
        ))
        self.styles.add(ParagraphStyle(
            name="ReportTotal",
            parent=self.styles["Heading2"],
            textColor=_HEADER_BG,
            spaceBefore=12,
        ))

    # ── Data ────────────────────────────────────────────────────────────

    def build_report(
        self,
        survey: Survey,
        template: SurveyTemplate,
        generated_at: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Join a survey's stored responses to its template questions.

        Returns
        -------
        dict
            ::

                {
                    "title": "Carbon Footprint Report",
                    "template": {"name": "...", "code": "CS-2024-AB12CD"},
                    "household": {"id", "address", "occupants", "area"},
                    "rows": [
                        {"question", "unit", "value", "coefficient",
                         "carbon_equivalent", "carbon_equivalent_display"},
                    ],
                    "total": 69.0,
                    "total_display": "69.00",
                    "per_occupant_display": "34.50",
                    "generated_at": "2024-06-01 10:00 UTC",
                }
        """
        questions = {q["id"]: q for q in (template.questions or [])}
        generated_at = generated_at or datetime.now(timezone.utc)

        rows: list[dict[str, Any]] = []
        for response in survey.responses or []:
            question = questions.get(response["questionId"])
            equivalent = response["carbonEquivalent"]
            rows.append({
                # the template may have been edited since; fall back to the id
                "question": question["text"] if question else response["questionId"],
                "unit": question["unit"] if question else "",
                "value": response["value"],
                "coefficient": question["coefficient"] if question else None,
                "carbon_equivalent": equivalent,
                "carbon_equivalent_display": format_kg(equivalent),
            })

        total = survey.total_carbon_footprint
        per_occupant = total / survey.occupants if survey.occupants else None

        return {
            "title": "Carbon Footprint Report",
            "template": {"name": template.name, "code": template.code},
            "household": {
                "id": survey.household_id,
                "address": survey.household_address,
                "occupants": survey.occupants,
                "area": survey.area,
            },
            "rows": rows,
            "total": total,
            "total_display": format_kg(total),
            "per_occupant_display": format_kg(per_occupant),
            "conducted_at": survey.created_at.strftime("%Y-%m-%d %H:%M") if survey.created_at else None,
            "generated_at": generated_at.strftime("%Y-%m-%d %H:%M UTC"),
        }

    # ── PDF ─────────────────────────────────────────────────────────────

    def render_pdf(self, report: dict[str, Any]) -> bytes:
        """Render a report dict (from ``build_report``) to PDF bytes."""
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=54,
            leftMargin=54,
            topMargin=54,
            bottomMargin=54,
            title=report["title"],
        )

        body = self.styles["BodyText"]
        story: list = [
            Paragraph(escape(report["title"]), self.styles["ReportTitle"]),
            Paragraph(
                f"<b>Survey:</b> {escape(report['template']['name'])} "
                f"({escape(report['template']['code'])})",
                body,
            ),
            Paragraph(f"<b>Generated:</b> {report['generated_at']}", body),
            Spacer(1, 0.25 * inch),
            Paragraph("Household", self.styles["Heading2"]),
            self._household_table(report["household"], report.get("conducted_at")),
            Spacer(1, 0.25 * inch),
            Paragraph("Responses", self.styles["Heading2"]),
        ]

        if report["rows"]:
            story.append(self._responses_table(report["rows"]))
        else:
            story.append(Paragraph("<i>No responses were recorded.</i>", body))

        story.append(Paragraph(
            f"Total footprint: {report['total_display']} {CO2_UNIT}",
            self.styles["ReportTotal"],
        ))
        story.append(Paragraph(
            f"Per occupant: {report['per_occupant_display']} {CO2_UNIT}", body
        ))

        doc.build(story)
        pdf_bytes = buffer.getvalue()
        logger.info("report_pdf_rendered", size_bytes=len(pdf_bytes), rows=len(report["rows"]))
        return pdf_bytes

    def _household_table(self, household: dict, conducted_at: Optional[str]) -> Table:
        cell = self.styles["BodyText"]
        data = [
            ["Household ID", Paragraph(escape(household["id"]), cell)],
            ["Address", Paragraph(escape(household["address"]), cell)],
            ["Occupants", str(household["occupants"])],
            ["Area (m²)", _format_number(household["area"])],
        ]
        if conducted_at:
            data.append(["Conducted", conducted_at])

        table = Table(data, colWidths=[1.6 * inch, 4.6 * inch])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("GRID", (0, 0), (-1, -1), 0.5, _GRID),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        return table

    def _responses_table(self, rows: list[dict]) -> Table:
        cell = self.styles["BodyText"]
        data: list[list] = [["Question", "Value", "Unit", "Coefficient", CO2_UNIT]]
        for row in rows:
            data.append([
                Paragraph(escape(str(row["question"])), cell),
                _format_number(row["value"]),
                row["unit"],
                _format_number(row["coefficient"]),
                row["carbon_equivalent_display"],
            ])

        table = Table(
            data,
            colWidths=[2.6 * inch, 0.8 * inch, 0.8 * inch, 0.9 * inch, 1.1 * inch],
            repeatRows=1,
        )
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), _HEADER_BG),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, _ROW_ALT_BG]),
            ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
            ("GRID", (0, 0), (-1, -1), 0.5, _GRID),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        return table
