"""
Tests for the line item extraction cascade.
"""

from extraction_config import ExtractionConfig
from extraction_schema import ExtractedDocument, FormatKind, LineItem, PdfRow
from line_item_engine import (
    FreeformPatternStrategy, LineItemExtractionEngine, LineNumberStrategy,
    PLACEHOLDER_DESCRIPTION, PurchaseRequisitionStrategy
)


def make_engine() -> LineItemExtractionEngine:
    return LineItemExtractionEngine(ExtractionConfig())


def make_row(cells, index):
    return PdfRow(raw_text="\t".join(cells), cells=cells, page=1, row_index_within_document=index, y=700 - index * 12)


PR_TEXT = """Purchase Requisition No: 4500123
Line Quantity UOM Item Code Item Description GL Code
10 5 EA 201368 RELAY OVERLOAD 1500405 0 0
THERMAL 9-13A
20 2 EA 204455 FUSE HOLDER 32A 1500405 0 0
Total in USD 0
"""


def test_compact_requisition_row():
    items = make_engine().extract_items("10 5 EA 201368 RELAY OVERLOAD 1500405 0 0")

    assert len(items) == 1
    item = items[0]
    assert item.quantity == 5
    assert item.unit == "pcs"
    assert item.internal_code == "201368"
    assert item.description == "RELAY OVERLOAD"
    assert item.original_line_number == 10
    assert item.reference == "201368"


def test_requisition_rows_with_continuation_lines():
    engine = make_engine()
    items = engine.extract_items(PR_TEXT)

    assert [item.internal_code for item in items] == ["201368", "204455"]
    assert items[0].description == "RELAY OVERLOAD THERMAL 9-13A"
    assert items[1].description == "FUSE HOLDER 32A"
    assert items[1].quantity == 2
    assert engine.extract_rfq_number(PR_TEXT) == "4500123"


def test_requisition_rows_from_reconstructed_columns():
    engine = make_engine()
    rows = [
        make_row(["Line", "Quantity", "UOM", "Item Code", "Item Description"], 0),
        make_row(["10 5 EA 201368", "RELAY OVERLOAD", "1500405", "0", "0"], 1),
        make_row(["THERMAL 9-13A"], 2),
        make_row(["20", "2", "EA", "204455", "FUSE HOLDER 32A", "1500405"], 3),
    ]
    text = "\n".join(row.raw_text for row in rows)

    items = engine.extract_items(text, rows)

    assert engine.strategies[0].last_parser == "pr_columns"
    assert [item.description for item in items] == ["RELAY OVERLOAD THERMAL 9-13A", "FUSE HOLDER 32A"]
    assert [item.quantity for item in items] == [5, 2]


def test_duplicate_item_codes_are_emitted_once():
    text = ("10 5 EA 201368 RELAY OVERLOAD 1500405 0 0\n"
            "20 5 EA 201368 RELAY OVERLOAD 1500405 0 0\n")
    items = make_engine().extract_items(text)
    assert len(items) == 1


def test_additional_description_is_merged_into_items():
    text = ("10 1 EA 201500 GEARBOX SEAL KIT 1500405 0 0\n"
            "Additional Description: for DANA SPICER axle SERIAL: AB12345\n"
            "Total in USD 0\n")
    items = make_engine().extract_items(text)

    assert len(items) == 1
    assert items[0].description == "GEARBOX SEAL KIT"
    assert items[0].brand == "DANA"
    assert "AB12345" in items[0].notes


def test_line_number_parser_reads_two_token_part_numbers():
    text = ("1 4 PCS 710 0321 ROULEMENT CONIQUE ARRIERE\n"
            "2 0 PCS BAGUE D'ETANCHEITE AVANT\n"
            "3 250000 PCS JOINT TORIQUE 45X3\n")
    items = make_engine().extract_items(text)

    assert len(items) == 1
    item = items[0]
    assert item.description == "ROULEMENT CONIQUE ARRIERE"
    assert item.quantity == 4
    assert item.supplier_code == "7100321"
    assert item.reference == "710 0321"
    assert item.original_line_number == 1


def test_line_number_parser_rejects_rows_without_numeric_quantity():
    assert LineNumberStrategy.parse_row("2 x Filtre à huile moteur") is None
    assert LineNumberStrategy.parse_row("10 5 EA 201368 Total general") is None


def test_freeform_patterns_and_deduplication():
    text = ("Bonjour,\n"
            "2 x Filtre à huile moteur\n"
            "Pompe hydraulique centrifuge : 3 pcs\n"
            "Pompe hydraulique centrifuge : 3 pcs\n")
    items = make_engine().extract_items(text)

    assert [(item.description, item.quantity) for item in items] == [
        ("Filtre à huile moteur", 2),
        ("Pompe hydraulique centrifuge", 3),
    ]
    assert all(item.unit == "pcs" for item in items)


def test_freeform_cap():
    text = "\n".join(f"Article numero A{i:03d} : {i + 1}" for i in range(30))
    strategy = FreeformPatternStrategy(max_items=10)
    engine = LineItemExtractionEngine(ExtractionConfig(), strategies=[strategy])
    assert len(engine.extract_items(text)) == 10


def test_purchase_requisition_detection():
    assert PurchaseRequisitionStrategy.applies("Item Code Item Description")
    assert PurchaseRequisitionStrategy.applies("10 5 EA 201368 RELAY")
    assert not PurchaseRequisitionStrategy.applies("Merci de nous faire une offre")


def test_email_metadata_lines_are_not_items():
    text = "Sent: Monday, March 4, 2024 10:15 AM\nFrom: buyer@mine.ci\n"
    assert make_engine().extract_items(text) == []


def test_empty_text_yields_no_items():
    assert make_engine().extract_items("") == []
    assert make_engine().extract_items("   \n  ") == []


def test_finalize_inserts_placeholder():
    items = make_engine().finalize([], needs_verification=False, filename="scan.pdf")

    assert len(items) == 1
    assert items[0].description == PLACEHOLDER_DESCRIPTION
    assert items[0].description.startswith("Article à définir")
    assert items[0].quantity == 1
    assert items[0].needs_manual_review


def test_finalize_propagates_verification_flag():
    items = [LineItem(description="RELAY OVERLOAD", quantity=5)]
    items = make_engine().finalize(items, needs_verification=True)
    assert items[0].needs_manual_review


def test_finalize_document_marks_placeholder_documents():
    document = ExtractedDocument(filename="empty.docx", format_kind=FormatKind.WORD)
    document = make_engine().finalize_document(document)

    assert document.needs_verification
    assert len(document.items) == 1
    assert document.items[0].needs_manual_review
