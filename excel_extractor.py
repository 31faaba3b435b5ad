"""
Excel Extraction Module

Extracts line items from spreadsheet attachments (xlsx and csv). The header
row is searched in the first rows of each sheet by matching French and
English column vocabularies, so columns may appear in any order. Sheets
without a recognisable header are flattened to text and handed to the
generic line item cascade.
"""

import asyncio
import csv
import io
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import load_workbook

from extraction_config import ExtractionConfig, get_config
from extraction_schema import Attachment, ExtractedDocument, FormatKind, LineItem
from item_normalizer import detect_brand, parse_quantity
from line_item_engine import LineItemExtractionEngine

logger = logging.getLogger(__name__)

HEADER_SEARCH_ROWS = 20

COLUMN_VOCABULARY = {
    'description': (('désignation', 'designation', 'description', 'libellé', 'libelle',
                     'article', 'item', 'produit'), ('code',)),
    'quantity': (('qte', 'qty', 'quantité', 'quantity', 'qté', 'sum of qty', 'total qty',
                  'demandées', 'commander'), ()),
    'reference': (('code article', 'code', 'réf', 'référence', 'reference', 'part number', 'part'), ()),
    'diameter': (('diameter', 'diamètre', 'nominal', 'size', 'dimension'), ()),
    'unit': (('unité', 'unit', 'uom'), ()),
}

SKIPPED_ROW_MARKERS = (
    'grand total', 'sous-total', 'subtotal', 'responsable', 'directeur', 'visa',
    'magasin pdr', 'forces speciales', 'entretien',
)

PIECE_UNITS = ('pce', 'pc', 'off', 'ea', 'each')

SHEET_RFQ_PATTERN = re.compile(r"(BI|PR|RFQ|REF)[-_]?\d+", re.IGNORECASE)


@dataclass
class SheetData:
    """Cell values of one sheet as a list of rows."""
    name: str
    rows: List[List[Any]] = field(default_factory=list)

    def text(self) -> str:
        return "\n".join("\t".join(_cell_text(cell) for cell in row) for row in self.rows)


@dataclass
class SheetSummary:
    """Per-sheet statistics used to detect workbooks holding several requests."""
    name: str
    item_count: int
    brands: List[str] = field(default_factory=list)
    rfq_number: Optional[str] = None
    is_distinct_request: bool = False


@dataclass
class WorkbookAnalysis:
    filename: str
    sheets: List[SheetSummary] = field(default_factory=list)
    has_multiple_requests: bool = False


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _has_content(row: Sequence[Any]) -> bool:
    return any(_cell_text(cell).strip() for cell in row)


def find_column_index(row_lower: List[str], patterns: Sequence[str], exclusions: Sequence[str] = ()) -> int:
    """First cell containing any pattern and none of the exclusions, or -1."""
    for index, cell in enumerate(row_lower):
        if any(excluded in cell for excluded in exclusions):
            continue
        if any(pattern in cell for pattern in patterns):
            return index
    return -1


def find_header(rows: List[List[Any]]) -> Tuple[int, Dict[str, int]]:
    """
    Locate the header row among the first rows of a sheet.

    A row qualifies when it names a description column, or both a reference
    and a quantity column.

    Returns:
        (row index, column indexes by role), or (-1, {}) when no header is found
    """
    for row_index, row in enumerate(rows[:HEADER_SEARCH_ROWS]):
        row_lower = [_cell_text(cell).lower() for cell in row]
        columns = {
            role: find_column_index(row_lower, patterns, exclusions)
            for role, (patterns, exclusions) in COLUMN_VOCABULARY.items()
        }
        if columns['description'] != -1 or (columns['reference'] != -1 and columns['quantity'] != -1):
            logger.debug(f"Header found on row {row_index}: {columns}")
            return row_index, columns
    return -1, {}


def read_workbook(content: bytes, filename: str) -> List[SheetData]:
    """
    Read every sheet of an xlsx or csv attachment.

    Raises:
        ValueError: if the file is not a readable spreadsheet
    """
    if filename.lower().endswith('.csv'):
        text = content.decode('utf-8-sig', errors='replace')
        try:
            dialect = csv.Sniffer().sniff(text[:2048], delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel
        return [SheetData(name=filename, rows=[list(row) for row in csv.reader(io.StringIO(text), dialect)])]

    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError(f"Cannot read Excel file (is it corrupted or wrong format?): {e}")

    try:
        return [
            SheetData(name=ws.title, rows=[list(row) for row in ws.iter_rows(values_only=True)])
            for ws in wb.worksheets
        ]
    finally:
        wb.close()


class ExcelExtractor:
    """
    Header-driven spreadsheet extractor.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 engine: Optional[LineItemExtractionEngine] = None):
        self.config = config or get_config()
        self.engine = engine or LineItemExtractionEngine(self.config)

    async def extract(self, attachment: Attachment) -> ExtractedDocument:
        """
        Extract a spreadsheet attachment.

        Args:
            attachment: xlsx or csv attachment

        Returns:
            ExtractedDocument with at least one line item
        """
        sheets = await asyncio.to_thread(read_workbook, attachment.content, attachment.filename)
        text = "\n".join(sheet.text() for sheet in sheets)

        candidates: List[LineItem] = []
        cascade_items: List[LineItem] = []
        for sheet in sheets:
            header_index, columns = find_header(sheet.rows)
            if header_index == -1:
                logger.info(f"{attachment.filename}/{sheet.name}: no header row, using text cascade")
                cascade_items.extend(self.engine.extract_items(sheet.text()))
                continue
            rows = self.extract_rows(sheet.rows[header_index + 1:], columns)
            logger.info(f"{attachment.filename}/{sheet.name}: {len(rows)} row(s) under header {header_index}")
            candidates.extend(rows)

        # sheets are extracted independently; dedup across them once more
        items, report = self.engine.validator.validate_items(
            self.engine.refine_items(candidates, text) + cascade_items
        )
        if report.duplicates:
            logger.info(f"{attachment.filename}: dropped {report.duplicates} duplicate item(s) across sheets")

        document = ExtractedDocument(
            filename=attachment.filename,
            format_kind=FormatKind.EXCEL,
            raw_text=text,
            items=items,
            rfq_number=self.engine.extract_rfq_number(text),
            extraction_method="spreadsheet",
        )
        return self.engine.finalize_document(document)

    def extract_rows(self, rows: List[List[Any]], columns: Dict[str, int]) -> List[LineItem]:
        """Turn the data rows below a header into candidate line items."""
        items: List[LineItem] = []
        last_description = ""

        def cell(row: List[Any], role: str) -> Any:
            index = columns.get(role, -1)
            return row[index] if 0 <= index < len(row) else None

        for row in rows:
            if not row or not _has_content(row):
                continue

            description = _cell_text(cell(row, 'description')).strip()
            if not description:
                skipped = {columns.get('reference'), columns.get('quantity'), columns.get('unit')}
                for index, value in enumerate(row):
                    candidate = _cell_text(value).strip()
                    if index not in skipped and len(candidate) > 10 and not re.fullmatch(r"\d+([.,]\d+)?", candidate):
                        description = candidate
                        break

            # Rows carrying only a quantity continue the previous description
            if not description and last_description:
                description = last_description
            elif description:
                last_description = description

            lower = description.lower()
            if lower == 'total' or any(marker in lower for marker in SKIPPED_ROW_MARKERS):
                continue
            if len(description) < 3:
                continue

            diameter = _cell_text(cell(row, 'diameter')).strip()
            if diameter and diameter not in ('0', '0 mm'):
                description = f"{description} - {diameter}"

            quantity_cell = cell(row, 'quantity')
            quantity = parse_quantity(quantity_cell) or 0
            if quantity <= 0:
                skipped = {columns.get('description'), columns.get('reference')}
                for index, value in enumerate(row):
                    if index in skipped:
                        continue
                    value_quantity = parse_quantity(value)
                    if value_quantity and 0 < value_quantity < self.config.max_quantity:
                        quantity = value_quantity
                        break
            if quantity <= 0:
                continue

            unit = 'pcs'
            unit_value = _cell_text(cell(row, 'unit')).strip().lower()
            if unit_value and len(unit_value) < 10:
                unit = 'pcs' if unit_value in PIECE_UNITS else unit_value
            if ' M' in _cell_text(quantity_cell).upper():
                unit = 'm'

            item = LineItem(description=description, quantity=quantity, unit=unit,
                            brand=detect_brand(description, self.config.brands))
            reference = _cell_text(cell(row, 'reference')).strip()
            # Plain ordinals (1, 2, 3...) are row numbers, not references
            if len(reference) > 2 and not re.fullmatch(r"\d{1,2}", reference):
                item.reference = reference
                item.supplier_code = reference
            items.append(item)

        return items

    async def analyze_workbook(self, attachment: Attachment) -> WorkbookAnalysis:
        """
        Summarise each sheet and decide whether the workbook holds several requests.

        Sheets with more than three content rows are distinct requests; two or
        more of them with different brands or reference numbers make a
        multi-request workbook.
        """
        sheets = await asyncio.to_thread(read_workbook, attachment.content, attachment.filename)
        analysis = WorkbookAnalysis(filename=attachment.filename)

        for sheet in sheets:
            content_rows = [row for row in sheet.rows if row and _has_content(row)]
            flat = " ".join(_cell_text(cell).upper() for row in sheet.rows for cell in row if cell is not None)
            brands = [
                brand for brand in self.config.brands
                if re.search(rf"(?<![A-Z0-9]){re.escape(brand.upper())}(?![A-Z0-9])", flat)
            ]
            analysis.sheets.append(SheetSummary(
                name=sheet.name,
                item_count=max(0, len(content_rows) - 1),
                brands=brands,
                rfq_number=self._sheet_rfq_number(sheet),
                is_distinct_request=len(content_rows) > 3,
            ))

        distinct = [s for s in analysis.sheets if s.is_distinct_request]
        if len(distinct) > 1:
            brands = {brand for s in distinct for brand in s.brands}
            rfqs = {s.rfq_number for s in distinct if s.rfq_number}
            analysis.has_multiple_requests = len(brands) > 1 or len(rfqs) > 1
        return analysis

    @staticmethod
    def _sheet_rfq_number(sheet: SheetData) -> Optional[str]:
        match = SHEET_RFQ_PATTERN.search(sheet.name)
        if match:
            return match.group(0).upper()
        for row in sheet.rows[:10]:
            match = SHEET_RFQ_PATTERN.search(" ".join(_cell_text(cell) for cell in row))
            if match:
                return match.group(0).upper()
        return None
