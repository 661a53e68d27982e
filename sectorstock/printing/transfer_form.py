"""A4 transfer form rendering with ReportLab platypus."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from sectorstock.errors import ConfigurationError
from sectorstock.printing.qr import QrImage


logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"

TRANSFER_NOTICE = (
    "This document confirms the movement of the above-listed inventory items. "
    "Both parties must sign the transfer to acknowledge responsibility. "
    "Digital signatures collected through the QR code are automatically archived."
)


@dataclass(frozen=True)
class TransferLine:
    name: str
    sku: str | None
    amount: int
    direction: str
    reason: str | None = None


@dataclass(frozen=True)
class TransferForm:
    transfer_id: int
    generated_at: datetime
    initiator_name: str
    lines: tuple[TransferLine, ...]
    source_sector: str = ""
    target_sector: str = ""
    qr: QrImage | None = None
    notice: str = TRANSFER_NOTICE
    signature_labels: tuple[str, str] = field(
        default=("Source Signature", "Receiving Signature")
    )


def _text(value) -> str:
    return escape("" if value is None else str(value))


class ReportLabTransferRenderer:
    mime = PDF_MIME
    extension = "pdf"

    def __init__(self, *, font_path: str | None = None):
        self.font_name = "Helvetica"
        self.bold_font_name = "Helvetica-Bold"
        if font_path:
            try:
                pdfmetrics.registerFont(TTFont("TransferFont", font_path))
            except Exception as exc:  # TTFont raises TTFError or OSError for bad files
                raise ConfigurationError(
                    f"Transfer form font could not be loaded from {font_path}."
                ) from exc
            self.font_name = "TransferFont"
            self.bold_font_name = "TransferFont"

    def _styles(self) -> dict[str, ParagraphStyle]:
        base = getSampleStyleSheet()
        return {
            "title": ParagraphStyle(
                "TransferTitle",
                parent=base["Title"],
                fontName=self.bold_font_name,
                fontSize=18,
                alignment=0,
                spaceAfter=6,
            ),
            "meta": ParagraphStyle(
                "TransferMeta", parent=base["Normal"], fontName=self.font_name, fontSize=10, leading=14
            ),
            "cell": ParagraphStyle(
                "TransferCell", parent=base["Normal"], fontName=self.font_name, fontSize=9, leading=12
            ),
            "small": ParagraphStyle(
                "TransferSmall",
                parent=base["Normal"],
                fontName=self.font_name,
                fontSize=8,
                textColor=colors.HexColor("#6b7280"),
            ),
            "notice": ParagraphStyle(
                "TransferNotice",
                parent=base["Normal"],
                fontName=self.font_name,
                fontSize=9,
                leading=13,
                textColor=colors.HexColor("#4b5563"),
                backColor=colors.HexColor("#f8fafc"),
                borderPadding=8,
            ),
        }

    def _qr_flowable(self, qr: QrImage):
        size = 40 * mm
        source = BytesIO(qr.inline_bytes()) if qr.is_inline else qr.src
        return Image(source, width=size, height=size)

    def _header(self, form: TransferForm, styles) -> Table:
        meta = Paragraph(
            f"Transfer ID <b>#{int(form.transfer_id)}</b><br/>"
            f"Date {_text(form.generated_at.strftime('%Y-%m-%d %H:%M'))}<br/>"
            f"Initiated by {_text(form.initiator_name)}",
            styles["meta"],
        )
        left = [Paragraph("INVENTORY TRANSFER FORM", styles["title"]), meta]
        right = ""
        if form.qr is not None:
            right = [self._qr_flowable(form.qr), Paragraph("Scan to sign digitally", styles["small"])]

        header = Table([[left, right]], colWidths=[120 * mm, 50 * mm])
        header.setStyle(
            TableStyle(
                [
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("ALIGN", (1, 0), (1, 0), "RIGHT"),
                ]
            )
        )
        return header

    def _lines_table(self, form: TransferForm, styles) -> Table:
        rows = [["Item", "SKU", "Quantity", "Direction", "Notes"]]
        for line in form.lines:
            rows.append(
                [
                    Paragraph(_text(line.name), styles["cell"]),
                    Paragraph(_text(line.sku or "—"), styles["cell"]),
                    str(int(line.amount or 0)),
                    Paragraph(_text((line.direction or "").upper()), styles["cell"]),
                    Paragraph(_text(line.reason or ""), styles["cell"]),
                ]
            )

        table = Table(rows, colWidths=[68 * mm, 28 * mm, 20 * mm, 22 * mm, 32 * mm], repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#111827")),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#f9fafb")),
                    ("FONTNAME", (0, 0), (-1, 0), self.bold_font_name),
                    ("FONTNAME", (0, 1), (-1, -1), self.font_name),
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("LINEBELOW", (0, 0), (-1, -1), 0.5, colors.HexColor("#e5e7eb")),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("TOPPADDING", (0, 0), (-1, -1), 6),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        return table

    def _signature_blocks(self, form: TransferForm) -> Table:
        labels = [label.upper() for label in form.signature_labels]
        table = Table([["", ""], labels], colWidths=[80 * mm, 80 * mm], rowHeights=[22 * mm, None])
        table.setStyle(
            TableStyle(
                [
                    ("LINEBELOW", (0, 0), (0, 0), 1.5, colors.HexColor("#1f2937")),
                    ("LINEBELOW", (1, 0), (1, 0), 1.5, colors.HexColor("#1f2937")),
                    ("FONTNAME", (0, 1), (-1, 1), self.bold_font_name),
                    ("FONTSIZE", (0, 1), (-1, 1), 8),
                    ("LEFTPADDING", (1, 0), (1, -1), 12),
                ]
            )
        )
        return table

    def build_story(self, form: TransferForm) -> list:
        styles = self._styles()
        story = [self._header(form, styles), Spacer(1, 6 * mm)]

        if form.source_sector:
            story.append(Paragraph(f"From <b>{_text(form.source_sector)}</b>", styles["meta"]))
        if form.target_sector:
            story.append(Paragraph(f"To <b>{_text(form.target_sector)}</b>", styles["meta"]))

        story.extend(
            [
                Spacer(1, 4 * mm),
                self._lines_table(form, styles),
                Spacer(1, 12 * mm),
                self._signature_blocks(form),
                Spacer(1, 10 * mm),
                Paragraph(_text(form.notice), styles["notice"]),
            ]
        )
        return story

    def render(self, form: TransferForm) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=15 * mm,
            rightMargin=15 * mm,
            topMargin=15 * mm,
            bottomMargin=15 * mm,
            title=f"Transfer #{int(form.transfer_id)}",
        )
        doc.build(self.build_story(form))
        pdf = buffer.getvalue()
        logger.debug("Rendered transfer form #%s (%d bytes)", form.transfer_id, len(pdf))
        return pdf
