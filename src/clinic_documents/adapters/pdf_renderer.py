"""PDF renderer - turn appointment results into a fixed-layout report.

Rendering is pure: no I/O and no shared mutable state. The same event always
yields the same bytes.

Text is set in Noto Sans (from pymupdf-fonts), which covers Latin, Greek and
Cyrillic. Characters Noto Sans has no glyph for fall back to PyMuPDF's
built-in CJK font. Both fonts are embedded, so every field reads back verbatim.
"""

import abc
import functools
import logging
from datetime import date, datetime
from typing import Callable, List, Tuple

import fitz  # PyMuPDF

from clinic_documents.domain.events import AppointmentResultCreated

logger = logging.getLogger(__name__)

TITLE = "Medical Appointment Report"
FOOTER = (
    "Thank you for choosing our clinic. We wish you continued good health "
    "and look forward to serving you again."
)

MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

# Layout, in PDF points
PAGE = fitz.paper_rect("a4")
MARGIN = 42.5  # 1.5 cm
LINE_SPACING = 1.2
ITEM_SPACING = 4
SECTION_GAP = 10
CONTENT_TOP_GAP = 28  # 1 cm

# pymupdf-fonts names for Noto Sans regular and bold
REGULAR_FONT = "notos"
BOLD_FONT = "notosbo"
FALLBACK_FONT = "cjk"

TITLE_SIZE = 24
LABEL_SIZE = 18
VALUE_SIZE = 16
FOOTER_SIZE = 12

BLACK = (0, 0, 0)
DARK_BLUE = (13 / 255, 71 / 255, 161 / 255)


class RenderError(Exception):
    """Raised when a PDF document cannot be produced."""
    pass


class Typeface:
    """A primary font plus a fallback for characters the primary cannot draw."""

    def __init__(self, font: fitz.Font, fallback: fitz.Font):
        self.font = font
        self.fallback = fallback

    def _font_for(self, char: str) -> fitz.Font:
        codepoint = ord(char)
        if self.font.has_glyph(codepoint) or not self.fallback.has_glyph(codepoint):
            return self.font
        return self.fallback

    def runs(self, text: str) -> List[Tuple[fitz.Font, str]]:
        """Split text into consecutive runs drawn with the same font."""
        runs = []
        for char in text:
            font = self._font_for(char)
            if runs and runs[-1][0] is font:
                runs[-1][1].append(char)
            else:
                runs.append((font, [char]))
        return [(font, "".join(chars)) for font, chars in runs]

    def text_length(self, text: str, fontsize: float) -> float:
        return sum(font.text_length(run, fontsize=fontsize) for font, run in self.runs(text))


@functools.lru_cache(maxsize=None)
def load_typefaces() -> Tuple[Typeface, Typeface]:
    """Load the (regular, bold) typefaces once per process."""
    fallback = fitz.Font(FALLBACK_FONT)
    return (
        Typeface(fitz.Font(REGULAR_FONT), fallback),
        Typeface(fitz.Font(BOLD_FONT), fallback),
    )


def format_appointment_date(value: datetime) -> str:
    """Format as ``DD Month YYYY, HH:MM`` with English month names."""
    return f"{value.day:02d} {MONTHS[value.month - 1]} {value.year:04d}, {value.hour:02d}:{value.minute:02d}"


def format_short_date(value: date) -> str:
    """Format as ``DD.MM.YYYY``."""
    return f"{value.day:02d}.{value.month:02d}.{value.year:04d}"


# Report sections in display order
SECTIONS: Tuple[Tuple[str, Callable[[AppointmentResultCreated], str]], ...] = (
    ("Appointment Date:", lambda e: format_appointment_date(e.date)),
    ("Patient Name:", lambda e: e.patient_full_name),
    ("Date of Birth:", lambda e: format_short_date(e.patient_birth_date)),
    ("Doctor's Name:", lambda e: e.doctor_full_name),
    ("Specialization:", lambda e: e.specialization_name),
    ("Service Provided:", lambda e: e.service_name),
    ("Patient Complaints:", lambda e: e.complaints),
    ("Conclusions:", lambda e: e.conclusion),
    ("Recommendations:", lambda e: e.recommendations),
)


class AbstractRenderer(abc.ABC):
    """Renders an appointment result into document bytes."""

    @abc.abstractmethod
    def render(self, event: AppointmentResultCreated) -> bytes:
        """
        Raises:
            RenderError: If the document cannot be encoded
        """
        raise NotImplementedError


class ResultPdfRenderer(AbstractRenderer):
    """Render appointment results as A4 PDF reports with PyMuPDF."""

    def render(self, event: AppointmentResultCreated) -> bytes:
        logger.info(f"Rendering PDF report for result {event.result_id}")
        try:
            regular, bold = load_typefaces()
            doc = fitz.open()
            try:
                self._write_report(doc, event, regular, bold)
                doc.set_metadata({
                    "title": TITLE,
                    "subject": f"Appointment result {event.result_id}",
                    "creationDate": _pdf_date(event.date),
                    "modDate": _pdf_date(event.date),
                })
                # no_new_id keeps the trailer ID out so output is byte-stable
                pdf_bytes = doc.tobytes(garbage=3, deflate=True, no_new_id=True)
            finally:
                doc.close()
        except Exception as e:
            logger.error(f"Failed to render PDF report for result {event.result_id}: {e}")
            raise RenderError(f"Failed to render result {event.result_id}: {e}") from e

        logger.info(f"Rendered PDF report for result {event.result_id} ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _write_report(self, doc, event: AppointmentResultCreated, regular: Typeface, bold: Typeface):
        width = PAGE.width - 2 * MARGIN
        footer_lines = wrap_text(FOOTER, regular, FOOTER_SIZE, width)
        footer_height = len(footer_lines) * FOOTER_SIZE * LINE_SPACING
        writer = _PageWriter(doc, bottom=PAGE.height - MARGIN - footer_height - SECTION_GAP)

        writer.write(TITLE, bold, TITLE_SIZE, BLACK, centered=True)
        writer.skip(CONTENT_TOP_GAP)

        for index, (label, value_of) in enumerate(SECTIONS):
            if index:
                writer.skip(SECTION_GAP)
            writer.write(label, bold, LABEL_SIZE, BLACK)
            writer.skip(ITEM_SPACING)
            writer.write(value_of(event), regular, VALUE_SIZE, DARK_BLUE)

        # Footers go last so text extraction reads the report in order
        for page in doc:
            y = PAGE.height - MARGIN - footer_height
            for line in footer_lines:
                y += FOOTER_SIZE
                x = MARGIN + (width - regular.text_length(line, FOOTER_SIZE)) / 2
                draw_line(page, (x, y), line, regular, FOOTER_SIZE, BLACK)
                y += FOOTER_SIZE * (LINE_SPACING - 1)


class _PageWriter:
    """Writes wrapped lines top to bottom, starting new pages as needed."""

    def __init__(self, doc, bottom: float):
        self.doc = doc
        self.bottom = bottom
        self.page = None
        self.y = 0.0
        self._new_page()

    def _new_page(self):
        self.page = self.doc.new_page(width=PAGE.width, height=PAGE.height)
        self.y = MARGIN

    def skip(self, amount: float):
        self.y += amount

    def write(self, text: str, typeface: Typeface, fontsize: float, color, centered: bool = False):
        width = PAGE.width - 2 * MARGIN
        for line in wrap_text(text, typeface, fontsize, width):
            x = MARGIN
            if centered:
                x += (width - typeface.text_length(line, fontsize)) / 2
            height = fontsize * LINE_SPACING
            if self.y + height > self.bottom:
                self._new_page()
            if line:
                draw_line(self.page, (x, self.y + fontsize), line, typeface, fontsize, color)
            self.y += height


def draw_line(page, origin: Tuple[float, float], line: str, typeface: Typeface, fontsize: float, color):
    """Draw one line starting at the baseline ``origin``, switching fonts per run."""
    x, baseline = origin
    writer = fitz.TextWriter(page.rect)
    for font, run in typeface.runs(line):
        writer.append((x, baseline), run, font=font, fontsize=fontsize)
        x += font.text_length(run, fontsize=fontsize)
    writer.write_text(page, color=color)


def wrap_text(text: str, typeface: Typeface, fontsize: float, width: float) -> List[str]:
    """Break text into lines no wider than ``width``, keeping every character."""
    lines = []
    for paragraph in text.splitlines() or [""]:
        line = ""
        for word in paragraph.split(" "):
            candidate = f"{line} {word}" if line else word
            if typeface.text_length(candidate, fontsize) <= width:
                line = candidate
                continue
            if line:
                lines.append(line)
            while typeface.text_length(word, fontsize) > width:
                cut = _fitting_prefix(word, typeface, fontsize, width)
                lines.append(word[:cut])
                word = word[cut:]
            line = word
        lines.append(line)
    return lines


def _fitting_prefix(word: str, typeface: Typeface, fontsize: float, width: float) -> int:
    cut = len(word) - 1
    while cut > 1 and typeface.text_length(word[:cut], fontsize) > width:
        cut -= 1
    return cut


def _pdf_date(value: datetime) -> str:
    return value.strftime("D:%Y%m%d%H%M%S")
