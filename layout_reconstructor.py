"""
Layout Reconstruction Module

Rebuilds table rows and cells from positioned PDF tokens. Tokens are
clustered into rows by vertical proximity, then each row is split into cells
wherever the horizontal gap between neighbouring tokens exceeds a threshold.
The threshold is either fixed or derived from the median gap observed on the
page, which adapts to documents with unusually wide or tight letter spacing.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from extraction_schema import LayoutStats, PdfRow, PdfToken

logger = logging.getLogger(__name__)


@dataclass
class LayoutResult:
    """Reconstructed rows plus statistics used to judge how regular the layout is."""
    rows: List[PdfRow] = field(default_factory=list)
    stats: LayoutStats = field(default_factory=LayoutStats)

    @property
    def is_regular(self) -> bool:
        """Cell boundaries are worth trusting when rows typically split into several cells."""
        return self.stats.total_rows > 0 and self.stats.avg_cells_per_row >= 2


class LayoutReconstructor:
    """
    Converts PDF tokens with (x, y) coordinates into rows and cells.
    """

    def __init__(self, y_tolerance: float = 3.0, min_gap_for_cell: float = 10.0,
                 dynamic_gap: bool = True, gap_multiplier: float = 1.8):
        """
        Initialize the reconstructor.

        Args:
            y_tolerance: Maximum vertical distance between tokens of one row
            min_gap_for_cell: Fixed horizontal gap that starts a new cell
            dynamic_gap: Derive the gap threshold from the page's median gap
            gap_multiplier: Factor applied to the median gap
        """
        self.y_tolerance = y_tolerance
        self.min_gap_for_cell = min_gap_for_cell
        self.dynamic_gap = dynamic_gap
        self.gap_multiplier = gap_multiplier

    def tokens_to_rows(self, tokens: List[PdfToken]) -> LayoutResult:
        """
        Cluster tokens into rows and split rows into cells.

        Args:
            tokens: Tokens from the PDF text layer

        Returns:
            LayoutResult with rows in reading order and aggregate statistics
        """
        tokens = [t for t in tokens if t.text and t.text.strip()]
        if not tokens:
            return LayoutResult()

        by_page: Dict[int, List[PdfToken]] = {}
        for token in tokens:
            by_page.setdefault(token.page, []).append(token)

        rows: List[PdfRow] = []
        all_gaps: List[float] = []

        for page in sorted(by_page):
            row_groups = self._group_rows(by_page[page])
            page_gaps = [gap for group in row_groups for gap in self._gaps(group) if gap > 0]
            all_gaps.extend(page_gaps)
            threshold = self.gap_threshold(page_gaps)

            for group in row_groups:
                cells = self._split_cells(group, threshold)
                rows.append(PdfRow(
                    raw_text="\t".join(cells),
                    cells=cells,
                    page=page,
                    row_index_within_document=len(rows),
                    y=sum(t.y for t in group) / len(group),
                ))

        stats = LayoutStats(
            total_pages=len(by_page),
            total_tokens=len(tokens),
            total_rows=len(rows),
            avg_cells_per_row=round(sum(len(r.cells) for r in rows) / len(rows), 2) if rows else 0.0,
            median_gap_x=round(self._median(all_gaps), 2) if all_gaps else 0.0,
        )
        logger.debug(f"Layout: {stats.total_rows} rows on {stats.total_pages} page(s), "
                     f"{stats.avg_cells_per_row} cells/row, median gap {stats.median_gap_x}")
        return LayoutResult(rows=rows, stats=stats)

    def gap_threshold(self, gaps: List[float]) -> float:
        """Fixed minimum, or median gap x multiplier when enough gaps were observed."""
        if self.dynamic_gap and len(gaps) > 5:
            return max(self.min_gap_for_cell, self._median(gaps) * self.gap_multiplier)
        return self.min_gap_for_cell

    def _group_rows(self, tokens: List[PdfToken]) -> List[List[PdfToken]]:
        # Top of page first (PDF y grows upwards), left to right
        ordered = sorted(tokens, key=lambda t: (-t.y, t.x))
        groups: List[List[PdfToken]] = []
        current: List[PdfToken] = []
        current_y = 0.0

        for token in ordered:
            if current and abs(token.y - current_y) <= self.y_tolerance:
                current.append(token)
                continue
            if current:
                groups.append(current)
            current = [token]
            current_y = token.y
        if current:
            groups.append(current)

        return [sorted(group, key=lambda t: t.x) for group in groups]

    @staticmethod
    def _gaps(row: List[PdfToken]) -> List[float]:
        return [row[i].x - (row[i - 1].x + row[i - 1].width) for i in range(1, len(row))]

    @staticmethod
    def _split_cells(row: List[PdfToken], threshold: float) -> List[str]:
        cells: List[str] = []
        current = row[0].text
        last_end = row[0].x + row[0].width

        for token in row[1:]:
            gap = token.x - last_end
            if gap > threshold:
                cells.append(current.strip())
                current = token.text
            elif gap > 2:
                current += " " + token.text
            else:
                current += token.text
            last_end = max(last_end, token.x + token.width)

        cells.append(current.strip())
        return [cell for cell in cells if cell]

    @staticmethod
    def _median(values: List[float]) -> float:
        ordered = sorted(values)
        return ordered[len(ordered) // 2]
