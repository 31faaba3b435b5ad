"""
Tests for Word document extraction.
"""

import asyncio
import io

import docx
import pytest

from extraction_config import ExtractionConfig
from extraction_schema import Attachment, FormatKind
from word_extractor import WordExtractor, read_docx_text

DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def docx_bytes(paragraphs, table_rows=None, merge_first_two=False) -> bytes:
    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    if table_rows:
        table = document.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for row_index, values in enumerate(table_rows):
            for col_index, value in enumerate(values):
                table.cell(row_index, col_index).text = value
        if merge_first_two:
            merged = table.cell(0, 0).merge(table.cell(0, 1))
            merged.text = table_rows[0][0]
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def test_read_docx_text_includes_tables():
    content = docx_bytes(["Bonjour"], [["Désignation", "Quantité"], ["Pompe hydraulique", "3"]])
    text = read_docx_text(content)

    assert "Bonjour" in text.splitlines()
    assert "Désignation\tQuantité" in text
    assert "Pompe hydraulique\t3" in text


def test_read_docx_text_collapses_merged_cells():
    content = docx_bytes([], [["Pompe hydraulique", "", "3 pcs"]], merge_first_two=True)
    assert "Pompe hydraulique\t3 pcs" in read_docx_text(content)


def test_read_docx_text_rejects_other_content():
    with pytest.raises(ValueError):
        read_docx_text(b"%PDF-1.4 not a word file")


def test_word_extraction():
    content = docx_bytes(["Demande de prix RFQ-20001", "Merci de nous coter:", "2 x Filtre à huile moteur"])
    attachment = Attachment(filename="demande.docx", content_type=DOCX_TYPE, content=content)

    document = asyncio.run(WordExtractor(ExtractionConfig()).extract(attachment))

    assert document.format_kind == FormatKind.WORD
    assert document.extraction_method == "docx"
    assert document.rfq_number == "20001"
    assert [(item.description, item.quantity) for item in document.items] == [("Filtre à huile moteur", 2)]
