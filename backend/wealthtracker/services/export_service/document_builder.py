"""
Document Builder: cursor-positioned PDF drawing with fpdf2.

Part of the export_service package. fpdf2 is imported on first use and the
class cached for the rest of the process.
"""

import logging
import re as _re
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Callable, Optional

from wealthtracker.exceptions import GenerationError

logger = logging.getLogger(__name__)

# Set by _load_fpdf() on first document
_fpdf_class = None

# Regex to strip emoji characters (Helvetica lacks emoji glyphs)
_EMOJI_RE = _re.compile(
    "["
    "\U0001F300-\U0001F9FF"  # Misc Symbols, Emoticons, Supplemental Symbols
    "\U00002702-\U000027B0"  # Dingbats
    "\U0000FE00-\U0000FE0F"  # Variation Selectors
    "\U0000200D"             # Zero Width Joiner
    "]+",
)

_REPLACEMENTS = {
    "\u2013": "-",    # en-dash
    "\u2014": "--",   # em-dash
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u2026": "...",
    "\u2022": "*",    # bullet
    "\u00a0": " ",    # non-breaking space
    "\u2212": "-",    # minus sign
    "\u20ac": "EUR",
}


def _sanitize_for_pdf(text: str) -> str:
    """Map text onto Latin-1, which is all the core Helvetica font can draw."""
    text = _EMOJI_RE.sub("", text)
    for char, replacement in _REPLACEMENTS.items():
        text = text.replace(char, replacement)
    return text.encode("latin-1", errors="replace").decode("latin-1")


class DocumentBuilder(ABC):
    """
    Minimal page-drawing surface used by the PDF report.

    Coordinates are millimetres from the top-left corner of an A4 page.
    """

    @abstractmethod
    def set_font_size(self, size: float) -> None:
        pass

    @abstractmethod
    def text(self, text: str, x: float, y: float) -> None:
        pass

    @abstractmethod
    def add_page(self) -> None:
        pass

    @abstractmethod
    def add_image(self, source: str, x: float, y: float, width: float, height: float) -> None:
        """Place an image. Raises if the image cannot be loaded."""

    @abstractmethod
    def output(self) -> bytes:
        pass


DocumentBuilderFactory = Callable[[], DocumentBuilder]


def _load_fpdf():
    global _fpdf_class
    if _fpdf_class is None:
        try:
            from fpdf import FPDF
        except ImportError as e:
            raise GenerationError("fpdf2 is required for PDF export. Install it with: pip install fpdf2") from e
        _fpdf_class = FPDF
    return _fpdf_class


class FpdfDocumentBuilder(DocumentBuilder):
    def __init__(self, font_family: str = "Helvetica"):
        fpdf_cls = _load_fpdf()
        self._font_family = font_family
        self._pdf = fpdf_cls(orientation="P", unit="mm", format="A4")
        self._pdf.set_auto_page_break(auto=False)
        self._pdf.add_page()
        self._pdf.set_font(font_family, size=12)

    def set_font_size(self, size: float) -> None:
        self._pdf.set_font(self._font_family, size=size)

    def text(self, text: str, x: float, y: float) -> None:
        self._pdf.text(x, y, _sanitize_for_pdf(text))

    def add_page(self) -> None:
        self._pdf.add_page()

    def add_image(self, source: str, x: float, y: float, width: float, height: float) -> None:
        self._pdf.image(source, x=x, y=y, w=width, h=height)

    def output(self) -> bytes:
        buffer = BytesIO()
        self._pdf.output(buffer)
        return buffer.getvalue()


def default_document_builder() -> DocumentBuilder:
    return FpdfDocumentBuilder()


def is_loaded() -> bool:
    """True once fpdf2 has been imported by a builder."""
    return _fpdf_class is not None


def reset_cache(value: Optional[type] = None) -> None:
    global _fpdf_class
    _fpdf_class = value
