"""
Certificate renderers — draw a certificate in memory and return its bytes.

Adapter layer — implements the ArtifactRenderer port twice:

  PdfCertificateRenderer → A4 portrait PDF via reportlab (default)
  PngCertificateRenderer → 1200×850 PNG via Pillow

Both share the same fixed layout, top to bottom:

  double border
  "Certificate of Completion"          (title)
  ───────────────                      (separator)
  "This is to certify that"
  <recipient name>                     (bold, large, underlined)
  "has successfully completed the"
  <program name>                       (bold)
  "program"
  Certificate ID: <id>   ...   Date: <Month D, YYYY>   (footer)

Text uses the standard Helvetica faces unless TrueType files are configured;
those are embedded in the PDF (and used by Pillow for the PNG) so names
outside Latin-1 keep their glyphs.

Output is deterministic: the PDF canvas runs in invariant mode (no creation
timestamp or random document id) with uncompressed page streams, and the
PNG encoder has no time input.
Long names and programs wrap onto more lines; nothing is truncated.
All drawing faults become RENDER_ERROR via Result.from_computation().
"""

from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path

import structlog
from PIL import Image, ImageDraw, ImageFont
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from cert_issuer.domain.models import RenderedArtifact
from cert_issuer.railway import ErrorCode, Result

log = structlog.get_logger()

TITLE = "Certificate of Completion"
CERTIFY_LINE = "This is to certify that"
COMPLETED_LINE = "has successfully completed the"
PROGRAM_SUFFIX = "program"

BROWN = "#5d4037"
LIGHT_BROWN = "#6d4c41"
BORDER_OUTER = "#8b6f47"
BORDER_INNER = "#d4a574"
FOOTER_GREY = "#999999"

BUILTIN_REGULAR = "Helvetica"
BUILTIN_BOLD = "Helvetica-Bold"


def format_issue_date(issued_at: datetime) -> str:
    """Long-form date, e.g. ``March 5, 2026``."""
    return f"{issued_at:%B} {issued_at.day}, {issued_at.year}"


def footer_texts(issuance_id: str, issued_at: datetime) -> tuple[str, str]:
    return f"Certificate ID: {issuance_id}", f"Date: {format_issue_date(issued_at)}"


# ─────────────────────── PDF (reportlab) ───────────────────────


class PdfCertificateRenderer:
    """
    Render certificates as single-page A4 PDFs.

    Implements the ArtifactRenderer port. Configured TrueType files are
    registered with reportlab on first use and embedded; a single configured
    face serves both weights. Without them the built-in Helvetica faces are
    used, which only cover WinAnsi text.
    """

    content_type = "application/pdf"

    def __init__(
        self,
        margin: float = 50,
        regular_font_path: str | None = None,
        bold_font_path: str | None = None,
    ) -> None:
        self._margin = margin
        self._regular_font_path = regular_font_path
        self._bold_font_path = bold_font_path

    def render(
        self,
        name: str,
        issuance_id: str,
        program: str,
        issued_at: datetime,
    ) -> Result[RenderedArtifact]:
        return Result.from_computation(
            lambda: RenderedArtifact(
                content=self._draw(name, issuance_id, program, issued_at),
                content_type=self.content_type,
            ),
            ErrorCode.RENDER_ERROR,
            "Certificate generation failed",
        ).peek(
            lambda artifact: log.debug(
                "renderer.rendered",
                issuance_id=issuance_id,
                format="pdf",
                size=len(artifact.content),
            )
        )

    def _draw(self, name: str, issuance_id: str, program: str, issued_at: datetime) -> bytes:
        buffer = io.BytesIO()
        width, height = A4
        regular, bold = self._fonts()
        pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1, pageCompression=0)
        pdf.setTitle(TITLE)

        pdf.setStrokeColor(HexColor(BORDER_OUTER))
        pdf.setLineWidth(3)
        pdf.rect(30, 30, width - 60, height - 60)
        pdf.setStrokeColor(HexColor(BORDER_INNER))
        pdf.setLineWidth(1)
        pdf.rect(45, 45, width - 90, height - 90)

        text_width = width - 2 * (self._margin + 30)
        y = height - 130

        y = self._centered(pdf, TITLE, bold, 36, BROWN, y, width, text_width)
        y -= 10
        self._separator(pdf, y, width, BORDER_INNER)
        y -= 50

        y = self._centered(pdf, CERTIFY_LINE, regular, 16, LIGHT_BROWN, y, width, text_width)
        y -= 30
        y = self._centered(pdf, name, bold, 32, "#000000", y, width, text_width)
        self._separator(pdf, y + 8, width, "#000000")
        y -= 40

        y = self._centered(pdf, COMPLETED_LINE, regular, 16, LIGHT_BROWN, y, width, text_width)
        y -= 12
        y = self._centered(pdf, program, bold, 18, BROWN, y, width, text_width)
        y -= 6
        self._centered(pdf, PROGRAM_SUFFIX, regular, 16, LIGHT_BROWN, y, width, text_width)

        id_text, date_text = footer_texts(issuance_id, issued_at)
        pdf.setFont(regular, 10)
        pdf.setFillColor(HexColor(FOOTER_GREY))
        pdf.drawString(self._margin + 10, 60, id_text)
        pdf.drawRightString(width - self._margin - 10, 60, date_text)

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    def _fonts(self) -> tuple[str, str]:
        """(regular, bold) font names for this render."""
        regular = _register_ttf(self._regular_font_path) if self._regular_font_path else None
        bold = _register_ttf(self._bold_font_path) if self._bold_font_path else None
        return regular or bold or BUILTIN_REGULAR, bold or regular or BUILTIN_BOLD

    @staticmethod
    def _centered(
        pdf: canvas.Canvas,
        text: str,
        font: str,
        size: float,
        color: str,
        y: float,
        page_width: float,
        max_width: float,
    ) -> float:
        """Draw wrapped, centered text starting at baseline y; return the next baseline."""
        pdf.setFont(font, size)
        pdf.setFillColor(HexColor(color))
        leading = size * 1.2
        for line in simpleSplit(text, font, size, max_width) or [""]:
            pdf.drawCentredString(page_width / 2, y, line)
            y -= leading
        return y

    @staticmethod
    def _separator(pdf: canvas.Canvas, y: float, page_width: float, color: str) -> None:
        pdf.setStrokeColor(HexColor(color))
        pdf.setLineWidth(1)
        pdf.line(100, y, page_width - 100, y)


def _register_ttf(path: str) -> str:
    """Register a TrueType file with reportlab once and return its font name."""
    font_name = f"cert-{Path(path).stem}"
    if font_name not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont(font_name, path))
    return font_name


# ─────────────────────── PNG (Pillow) ───────────────────────


class PngCertificateRenderer:
    """
    Render certificates as 1200×850 PNG images.

    Implements the ArtifactRenderer port. Uses TrueType fonts when paths are
    given, Pillow's bundled default font otherwise; bold text falls back to a
    stroked default font.
    """

    content_type = "image/png"
    size = (1200, 850)

    def __init__(
        self,
        regular_font_path: str | None = None,
        bold_font_path: str | None = None,
    ) -> None:
        self._regular_font_path = regular_font_path
        self._bold_font_path = bold_font_path

    def render(
        self,
        name: str,
        issuance_id: str,
        program: str,
        issued_at: datetime,
    ) -> Result[RenderedArtifact]:
        return Result.from_computation(
            lambda: RenderedArtifact(
                content=self._draw(name, issuance_id, program, issued_at),
                content_type=self.content_type,
            ),
            ErrorCode.RENDER_ERROR,
            "Certificate generation failed",
        ).peek(
            lambda artifact: log.debug(
                "renderer.rendered",
                issuance_id=issuance_id,
                format="png",
                size=len(artifact.content),
            )
        )

    def _font(self, size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        path = self._bold_font_path if bold else self._regular_font_path
        if path:
            return ImageFont.truetype(path, size)
        return ImageFont.load_default(size=size)

    def _stroke(self, bold: bool) -> int:
        """Fake bold with a 1px stroke when no bold face is configured."""
        return 1 if bold and not self._bold_font_path else 0

    def _draw(self, name: str, issuance_id: str, program: str, issued_at: datetime) -> bytes:
        width, height = self.size
        image = Image.new("RGB", self.size, "#fffaf0")
        draw = ImageDraw.Draw(image)

        draw.rectangle((20, 20, width - 20, height - 20), outline=BORDER_OUTER, width=6)
        draw.rectangle((40, 40, width - 40, height - 40), outline=BORDER_INNER, width=2)

        max_width = width - 200
        y = 110
        y = self._centered(draw, TITLE, 60, BROWN, y, max_width, bold=True)
        draw.line((150, y + 10, width - 150, y + 10), fill=BORDER_INNER, width=2)
        y += 60

        y = self._centered(draw, CERTIFY_LINE, 28, LIGHT_BROWN, y, max_width)
        y += 20
        y = self._centered(draw, name, 54, "#000000", y, max_width, bold=True)
        draw.line((150, y + 5, width - 150, y + 5), fill="#000000", width=2)
        y += 35

        y = self._centered(draw, COMPLETED_LINE, 28, LIGHT_BROWN, y, max_width)
        y += 10
        y = self._centered(draw, program, 34, BROWN, y, max_width, bold=True)
        y += 5
        self._centered(draw, PROGRAM_SUFFIX, 28, LIGHT_BROWN, y, max_width)

        id_text, date_text = footer_texts(issuance_id, issued_at)
        footer_font = self._font(18)
        footer_y = height - 90
        draw.text((80, footer_y), id_text, font=footer_font, fill=FOOTER_GREY)
        date_width = draw.textlength(date_text, font=footer_font)
        draw.text((width - 80 - date_width, footer_y), date_text, font=footer_font, fill=FOOTER_GREY)

        buffer = io.BytesIO()
        image.save(buffer, format="PNG", optimize=False)
        return buffer.getvalue()

    def _centered(
        self,
        draw: ImageDraw.ImageDraw,
        text: str,
        size: int,
        color: str,
        y: int,
        max_width: int,
        bold: bool = False,
    ) -> int:
        """Draw wrapped, centered text with its top at y; return the y below it."""
        font = self._font(size, bold)
        stroke = self._stroke(bold)
        canvas_width = self.size[0]
        for line in _wrap(draw, text, font, max_width):
            line_width = draw.textlength(line, font=font)
            draw.text(
                ((canvas_width - line_width) / 2, y),
                line,
                font=font,
                fill=color,
                stroke_width=stroke,
                stroke_fill=color,
            )
            y += int(size * 1.25)
        return y


def _wrap(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    max_width: int,
) -> list[str]:
    """Greedy word wrap. A single word wider than max_width gets its own line."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and draw.textlength(candidate, font=font) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    lines.append(current)
    return lines


def create_renderer(
    artifact_format: str,
    regular_font_path: str | None = None,
    bold_font_path: str | None = None,
) -> PdfCertificateRenderer | PngCertificateRenderer:
    """Pick the renderer for the configured artifact format (``pdf`` or ``png``)."""
    if artifact_format == "png":
        return PngCertificateRenderer(regular_font_path, bold_font_path)
    return PdfCertificateRenderer(
        regular_font_path=regular_font_path, bold_font_path=bold_font_path
    )
