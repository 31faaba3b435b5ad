"""
Tests for spreadsheet extraction.
"""

import asyncio
import io

import pytest
from openpyxl import Workbook

from excel_extractor import ExcelExtractor, find_header, read_workbook
from extraction_config import ExtractionConfig
from extraction_schema import Attachment, FormatKind
from item_normalizer import dedup_key

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def workbook_bytes(sheets) -> bytes:
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def make_attachment(filename: str, content: bytes) -> Attachment:
    return Attachment(filename=filename, content_type=XLSX_TYPE, content=content)


def extract(attachment: Attachment):
    return asyncio.run(ExcelExtractor(ExtractionConfig()).extract(attachment))


REQUEST_ROWS = [
    ["Demande BI-19716", None, None, None],
    ["Code Article", "Désignation", "Qté", "Unité"],
    ["HTM-56-4T", "Vanne papillon DN50", 4, "pce"],
    [None, None, 2, None],
    ["R-6205", "Roulement SKF 6205 2RS", "10", "EA"],
    [None, "Grand Total", 16, None],
]


def test_find_header_maps_columns_in_any_order():
    index, columns = find_header([["Qté", "Code Article", "Désignation"]])
    assert index == 0
    assert columns['quantity'] == 0
    assert columns['reference'] == 1
    assert columns['description'] == 2


def test_find_header_without_vocabulary():
    assert find_header([["foo", "bar"], [1, 2]]) == (-1, {})


def test_extract_header_driven_rows():
    document = extract(make_attachment("BI-19716.xlsx", workbook_bytes({"Demande": REQUEST_ROWS})))

    assert document.format_kind == FormatKind.EXCEL
    assert document.extraction_method == "spreadsheet"
    assert document.rfq_number == "BI-19716"
    assert [(item.description, item.quantity) for item in document.items] == [
        ("Vanne papillon DN50", 4),
        ("Vanne papillon DN50", 2),
        ("Roulement SKF 6205 2RS", 10),
    ]
    first, _, last = document.items
    assert first.reference == "HTM-56-4T"
    assert first.unit == "pcs"
    assert last.brand == "SKF"
    assert last.supplier_code == "R-6205"
    assert not document.needs_verification


def test_sheet_without_items_gets_placeholder():
    content = workbook_bytes({"Notes": [["Merci pour votre retour"]]})
    document = extract(make_attachment("notes.xlsx", content))

    assert document.needs_verification
    assert len(document.items) == 1
    assert document.items[0].needs_manual_review


def test_csv_attachment():
    content = "Designation;Qty\nFiltre a huile moteur;3\nFiltre a air cabine;2\n".encode("utf-8")
    document = extract(Attachment(filename="liste.csv", content_type="text/csv", content=content))

    assert [(item.description, item.quantity) for item in document.items] == [
        ("Filtre a huile moteur", 3),
        ("Filtre a air cabine", 2),
    ]


def test_unreadable_workbook_raises_value_error():
    with pytest.raises(ValueError):
        read_workbook(b"not a zip archive", "broken.xlsx")


def test_analyze_workbook_detects_multiple_requests():
    content = workbook_bytes({
        "BI-100": [["Désignation", "Qté"], ["Roulement SKF 6205", 2], ["Roulement SKF 6206", 2],
                   ["Roulement SKF 6207", 1]],
        "BI-200": [["Désignation", "Qté"], ["Flexible PARKER 1/2", 3], ["Raccord PARKER 3/4", 4],
                   ["Joint PARKER 50X3", 6]],
    })
    analysis = asyncio.run(ExcelExtractor(ExtractionConfig()).analyze_workbook(make_attachment("multi.xlsx", content)))

    assert [sheet.name for sheet in analysis.sheets] == ["BI-100", "BI-200"]
    assert analysis.sheets[0].item_count == 3
    assert analysis.sheets[0].brands == ["SKF"]
    assert analysis.sheets[1].rfq_number == "BI-200"
    assert analysis.has_multiple_requests


def test_analyze_workbook_single_request():
    content = workbook_bytes({"Demande": REQUEST_ROWS})
    analysis = asyncio.run(ExcelExtractor(ExtractionConfig()).analyze_workbook(make_attachment("one.xlsx", content)))
    assert not analysis.has_multiple_requests


def assert_line_item_invariants(document):
    keys = [dedup_key(item.description, item.quantity, item.internal_code) for item in document.items]
    assert len(keys) == len(set(keys))
    for item in document.items:
        assert len(item.description) >= 5


def test_same_item_on_two_headerless_sheets_is_kept_once():
    content = workbook_bytes({
        "Feuil1": [["Vanne papillon DN50 : 4 pcs"]],
        "Feuil2": [["Vanne papillon DN50 : 4 pcs"]],
    })
    document = extract(make_attachment("demande.xlsx", content))

    assert [(item.description, item.quantity) for item in document.items] == [("Vanne papillon DN50", 4)]
    assert_line_item_invariants(document)


def test_header_sheet_and_headerless_sheet_share_dedup():
    content = workbook_bytes({
        "Demande": [["Désignation", "Qté"], ["Vanne papillon DN50", 4]],
        "Rappel": [["Vanne papillon DN50 : 4 pcs"]],
    })
    document = extract(make_attachment("demande.xlsx", content))

    assert len(document.items) == 1
    assert_line_item_invariants(document)
