"""
Word Extraction Module

Extracts raw text from .docx attachments with python-docx (body paragraphs
followed by table rows, cells tab-separated) and runs the generic line item
cascade over it.
"""

import asyncio
import io
import logging
from typing import List, Optional

import docx

from extraction_config import ExtractionConfig, get_config
from extraction_schema import Attachment, ExtractedDocument, FormatKind
from line_item_engine import LineItemExtractionEngine

logger = logging.getLogger(__name__)


def read_docx_text(content: bytes) -> str:
    """
    Raw text of a .docx document.

    Raises:
        ValueError: if the content is not a readable .docx package
    """
    try:
        document = docx.Document(io.BytesIO(content))
    except Exception as e:
        raise ValueError(f"Cannot read Word document: {e}")

    lines: List[str] = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = []
            for cell in row.cells:
                value = cell.text.strip()
                # Merged cells are repeated by python-docx
                if not cells or cells[-1] != value:
                    cells.append(value)
            lines.append("\t".join(cells))
    return "\n".join(lines)


class WordExtractor:
    """Word attachment extractor."""

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 engine: Optional[LineItemExtractionEngine] = None):
        self.config = config or get_config()
        self.engine = engine or LineItemExtractionEngine(self.config)

    async def extract(self, attachment: Attachment) -> ExtractedDocument:
        text = await asyncio.to_thread(read_docx_text, attachment.content)
        logger.info(f"{attachment.filename}: {len(text)} chars of Word text")

        document = ExtractedDocument(
            filename=attachment.filename,
            format_kind=FormatKind.WORD,
            raw_text=text,
            items=self.engine.extract_items(text),
            rfq_number=self.engine.extract_rfq_number(text),
            extraction_method="docx",
        )
        return self.engine.finalize_document(document)
