"""
PDF Extraction Module

This module extracts line items from PDF attachments with a three-tier text
fallback. Each tier runs only when the previous one produced too little
usable text:

1. Native text layer (pdfplumber, with PyPDF2 as a second reader), which also
   yields positioned tokens for layout reconstruction
2. The pdftotext command-line tool in layout mode
3. OCR of the pages that carry no text

When every tier fails the filename itself is parsed for a reference, brand
and description, and the document is flagged for verification.
"""

import asyncio
import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import PyPDF2
import pdfplumber

from extraction_config import ExtractionConfig, get_config
from extraction_schema import Attachment, ExtractedDocument, FormatKind, LineItem, PdfToken
from external_tools import ExternalToolError, ScratchSpace, run_command
from item_normalizer import extract_filename_info
from layout_reconstructor import LayoutReconstructor
from line_item_engine import LineItemExtractionEngine
from ocr_fallback import OcrFallback

logger = logging.getLogger(__name__)

OCR_NOTE = "⚠️ VÉRIFICATION REQUISE - Extrait par OCR"
SCANNED_NOTE = "⚠️ VÉRIFICATION REQUISE - Document scanné, extraction automatique limitée"


@dataclass
class PdfTextLayer:
    """Text and positioned tokens read from the PDF text layer."""
    text: str = ""
    page_texts: List[str] = field(default_factory=list)
    tokens: List[PdfToken] = field(default_factory=list)
    reader: str = "none"

    @property
    def page_count(self) -> Optional[int]:
        return len(self.page_texts) if self.reader != "none" else None


def read_text_layer(content: bytes) -> PdfTextLayer:
    """
    Read text and word tokens with pdfplumber, falling back to PyPDF2 text.

    Token y coordinates are converted to PDF space (origin bottom-left).
    Returns an empty layer when neither library can parse the file.
    """
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            layer = PdfTextLayer(reader="pdfplumber")
            for page_number, page in enumerate(pdf.pages, start=1):
                page_text = page.extract_text() or ""
                layer.page_texts.append(page_text)
                for word in page.extract_words(keep_blank_chars=False, use_text_flow=False):
                    layer.tokens.append(PdfToken(
                        text=word['text'],
                        x=float(word['x0']),
                        y=float(page.height) - float(word['top']),
                        width=float(word['x1']) - float(word['x0']),
                        height=float(word['bottom']) - float(word['top']),
                        page=page_number,
                    ))
            layer.text = "\n".join(layer.page_texts)
            return layer
    except Exception as e:
        logger.warning(f"pdfplumber could not read the PDF: {e}")

    try:
        reader = PyPDF2.PdfReader(io.BytesIO(content))
        layer = PdfTextLayer(reader="pypdf2")
        for page_number, page in enumerate(reader.pages, start=1):
            try:
                layer.page_texts.append(page.extract_text() or "")
            except Exception as e:
                logger.warning(f"Error extracting text from page {page_number} with PyPDF2: {e}")
                layer.page_texts.append("")
        layer.text = "\n".join(layer.page_texts)
        return layer
    except Exception as e:
        logger.error(f"PyPDF2 could not read the PDF: {e}")
        return PdfTextLayer()


class PdfExtractor:
    """
    Tiered text recovery plus the line item cascade for PDF attachments.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 engine: Optional[LineItemExtractionEngine] = None,
                 ocr: Optional[OcrFallback] = None,
                 layout: Optional[LayoutReconstructor] = None):
        """
        Initialize the PDF extractor.

        Args:
            config: Shared extraction configuration
            engine: Line item engine
            ocr: OCR fallback used for the last tier
            layout: Reconstructor turning tokens into table rows
        """
        self.config = config or get_config()
        self.engine = engine or LineItemExtractionEngine(self.config)
        self.ocr = ocr or OcrFallback(self.config)
        self.layout = layout or LayoutReconstructor(
            y_tolerance=self.config.layout_y_tolerance,
            min_gap_for_cell=self.config.layout_min_gap,
            dynamic_gap=self.config.layout_dynamic_gap,
            gap_multiplier=self.config.layout_gap_multiplier,
        )

    async def extract(self, attachment: Attachment) -> ExtractedDocument:
        """
        Extract a PDF attachment.

        Args:
            attachment: PDF attachment

        Returns:
            ExtractedDocument with at least one line item
        """
        filename = attachment.filename
        min_chars = self.config.min_text_chars
        needs_verification = False

        layer = await self.read_text_layer(attachment.content)
        text = layer.text
        method = layer.reader
        logger.info(f"{filename}: text layer ({layer.reader}) gave {len(text.strip())} chars")

        if len(text.strip()) < min_chars:
            converted = await self.run_pdftotext(attachment.content)
            if len(converted.strip()) > len(text.strip()):
                text, method = converted, "pdftotext"
                logger.info(f"{filename}: pdftotext gave {len(text.strip())} chars")

        if len(text.strip()) < min_chars:
            pages = self._pages_needing_ocr(layer)
            outcome = await self.ocr.ocr_pdf(attachment.content, pages)
            if len(outcome.text.strip()) > self.config.min_ocr_chars:
                text = f"{text.strip()}\n\n{outcome.text}" if text.strip() else outcome.text
                method = "ocr"
                needs_verification = True
                logger.info(f"{filename}: OCR recovered {len(outcome.text.strip())} chars "
                            f"from page(s) {outcome.pages}")
            else:
                logger.warning(f"{filename}: OCR produced no usable text")

        rows = None
        if method == layer.reader and layer.tokens:
            result = self.layout.tokens_to_rows(layer.tokens)
            if result.is_regular:
                rows = result.rows

        items = self.engine.extract_items(text, rows)

        info = extract_filename_info(filename)
        if len(text.strip()) < self.config.min_ocr_chars:
            needs_verification = True
            method = "filename"
            if not items and info.description:
                items = [LineItem(
                    description=info.description,
                    quantity=1,
                    unit='lot',
                    brand=info.brand,
                    reference=info.reference,
                    is_estimated=True,
                    notes=SCANNED_NOTE,
                )]

        if needs_verification:
            for item in items:
                item.notes = item.notes or OCR_NOTE
                item.brand = item.brand or info.brand

        document = ExtractedDocument(
            filename=filename,
            format_kind=FormatKind.PDF,
            raw_text=text,
            items=items,
            rfq_number=self.engine.extract_rfq_number(text) or info.reference,
            needs_verification=needs_verification,
            extraction_method=method,
        )
        return self.engine.finalize_document(document)

    async def read_text_layer(self, content: bytes) -> PdfTextLayer:
        return await asyncio.to_thread(read_text_layer, content)

    async def run_pdftotext(self, content: bytes) -> str:
        """Second tier: `pdftotext -layout`; returns "" when the tool is unavailable or fails."""
        with ScratchSpace("rfq-pdf") as scratch:
            pdf_path = scratch.write_bytes(content, "pdf", ".pdf")
            try:
                output = await run_command(
                    ["pdftotext", "-layout", str(pdf_path), "-"], timeout=self.config.text_tool_timeout
                )
            except ExternalToolError as e:
                logger.warning(f"pdftotext tier skipped: {e}")
                return ""
        return output.decode("utf-8", errors="replace")

    def _pages_needing_ocr(self, layer: PdfTextLayer) -> Optional[List[int]]:
        if layer.page_count is None:
            return None
        pages = [
            number for number, page_text in enumerate(layer.page_texts, start=1)
            if len(page_text.strip()) < self.config.min_chars_per_page
        ]
        return pages or list(range(1, layer.page_count + 1))
