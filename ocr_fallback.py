"""
OCR Fallback Module

This module recovers text from scanned PDFs and images when the native text
layer is empty or too thin. Pages are rasterized to PNG (pdf2image/pdftoppm),
preprocessed with OpenCV and read with Tesseract. Scanned pages are often
rotated, so each page is tried at several orientations and the attempt that
recognises the most words wins. All temporary rasters live in a ScratchSpace
and are deleted on every exit path.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import cv2
import numpy as np
import pytesseract
from pdf2image import convert_from_path
from pdf2image.exceptions import (
    PDFInfoNotInstalledError, PDFPageCountError, PDFPopplerTimeoutError, PDFSyntaxError
)
from PIL import Image

from external_tools import ExternalToolError, ScratchSpace, unique_name
from extraction_config import ExtractionConfig, get_config

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"[a-zA-ZÀ-ÿ]{3,}")


def score_text(text: str) -> int:
    """Quality score of an OCR attempt: count of alphabetic tokens of length >= 3."""
    return len(WORD_PATTERN.findall(text or ""))


@dataclass
class OcrAttempt:
    """Best OCR result for one raster."""
    text: str = ""
    rotation: int = 0
    score: int = 0


@dataclass
class OcrOutcome:
    """OCR result for a whole document."""
    text: str = ""
    pages: List[int] = field(default_factory=list)
    rotations: List[int] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.text.strip())


class Rasterizer(ABC):
    """Capability: turn one PDF page into a PNG file inside a scratch space."""

    @abstractmethod
    async def rasterize(self, pdf_path: Path, page_number: int, scratch: ScratchSpace) -> Path:
        """Raise ExternalToolError when the page cannot be rendered."""


class OcrEngine(ABC):
    """Capability: recognise the text of one image file."""

    @abstractmethod
    async def recognize(self, image_path: Path) -> str:
        """Raise ExternalToolError when recognition fails or times out."""


class PdfToPngRasterizer(Rasterizer):
    """Rasterizer backed by pdf2image (poppler's pdftoppm)."""

    def __init__(self, dpi: int = 300, timeout: float = 60.0):
        self.dpi = dpi
        self.timeout = timeout

    async def rasterize(self, pdf_path: Path, page_number: int, scratch: ScratchSpace) -> Path:
        output_stem = unique_name(f"page{page_number}", "")
        try:
            paths = await asyncio.to_thread(
                convert_from_path,
                str(pdf_path),
                dpi=self.dpi,
                first_page=page_number,
                last_page=page_number,
                fmt="png",
                output_folder=str(scratch.directory),
                output_file=output_stem,
                single_file=True,
                paths_only=True,
                timeout=self.timeout,
            )
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, PDFPopplerTimeoutError, OSError) as e:
            raise ExternalToolError(f"Rasterization of page {page_number} failed: {e}") from e

        if not paths:
            raise ExternalToolError(f"Rasterization of page {page_number} produced no image")
        return scratch.track(Path(paths[0]))


class TesseractOcrEngine(OcrEngine):
    """OCR engine backed by pytesseract with OpenCV contrast normalization."""

    def __init__(self, languages: str = "fra+eng", psm: int = 6, timeout: float = 60.0, preprocess: bool = True):
        """
        Initialize the Tesseract engine.

        Args:
            languages: Tesseract language set, e.g. "fra+eng"
            psm: Page segmentation mode
            timeout: Seconds before the tesseract process is killed
            preprocess: Whether to convert to normalized grayscale before OCR
        """
        self.languages = languages
        self.timeout = timeout
        self.preprocess = preprocess
        self.tesseract_config = f'--oem 3 --psm {psm}'

    async def recognize(self, image_path: Path) -> str:
        try:
            return await asyncio.to_thread(self._recognize, image_path)
        except (RuntimeError, OSError) as e:
            # pytesseract reports timeouts and tesseract errors as RuntimeError,
            # a missing binary as an OSError subclass
            raise ExternalToolError(f"Tesseract failed on {Path(image_path).name}: {e}") from e

    def _recognize(self, image_path: Path) -> str:
        image = self._prepare_image(image_path)
        return pytesseract.image_to_string(
            image, lang=self.languages, config=self.tesseract_config, timeout=self.timeout
        )

    def _prepare_image(self, image_path: Path) -> Image.Image:
        if not self.preprocess:
            return Image.open(image_path)

        img = cv2.imread(str(image_path))
        if img is not None:
            gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        else:
            # Formats OpenCV cannot decode (GIF, some TIFF) go through Pillow
            with Image.open(image_path) as pil_image:
                gray = np.array(pil_image.convert("L"))
        normalized = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
        return Image.fromarray(normalized)


class OcrFallback:
    """
    Runs OCR over PDF pages or standalone images with a bounded rotation search.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 rasterizer: Optional[Rasterizer] = None,
                 engine: Optional[OcrEngine] = None):
        """
        Initialize the OCR fallback.

        Args:
            config: Shared extraction configuration
            rasterizer: PDF page rasterizer (pdf2image by default)
            engine: OCR engine (Tesseract by default)
        """
        self.config = config or get_config()
        self.rasterizer = rasterizer or PdfToPngRasterizer(
            dpi=self.config.ocr_dpi, timeout=self.config.rasterizer_timeout
        )
        self.engine = engine or TesseractOcrEngine(
            languages=self.config.ocr_languages, psm=self.config.ocr_psm, timeout=self.config.ocr_timeout
        )

    async def ocr_pdf(self, content: bytes, pages: Optional[Sequence[int]] = None) -> OcrOutcome:
        """
        OCR the pages of a PDF.

        Args:
            content: Raw PDF bytes
            pages: 1-based page numbers to OCR; unknown page count when None

        Returns:
            OcrOutcome with the text of every page that produced some
        """
        outcome = OcrOutcome()
        known_pages = pages is not None
        candidates = list(pages) if known_pages else list(range(1, self.config.max_ocr_pages + 1))
        candidates = candidates[:self.config.max_ocr_pages]

        with ScratchSpace("rfq-ocr") as scratch:
            pdf_path = scratch.write_bytes(content, "ocr", ".pdf")
            page_texts = []

            for page_number in candidates:
                try:
                    raster = await self.rasterizer.rasterize(pdf_path, page_number, scratch)
                except ExternalToolError as e:
                    logger.warning(f"Rasterizer failed on page {page_number}: {e}")
                    if known_pages:
                        continue
                    break

                attempt = await self.best_rotation(raster, scratch)
                if attempt.text.strip():
                    page_texts.append(attempt.text.strip())
                    outcome.pages.append(page_number)
                    outcome.rotations.append(attempt.rotation)
                    logger.info(f"OCR page {page_number}: rotation {attempt.rotation}, score {attempt.score}")

            outcome.text = "\n\n".join(page_texts)

        return outcome

    async def ocr_image(self, content: bytes, suffix: str = ".png", try_rotations: bool = False) -> OcrAttempt:
        """
        OCR a standalone image (no rasterization step).

        Args:
            content: Raw image bytes
            suffix: File suffix used for the temporary copy
            try_rotations: Whether to run the rotation search

        Returns:
            The best OcrAttempt
        """
        with ScratchSpace("rfq-img") as scratch:
            image_path = scratch.write_bytes(content, "image", suffix)
            if try_rotations:
                return await self.best_rotation(image_path, scratch)
            try:
                text = await self.engine.recognize(image_path)
            except ExternalToolError as e:
                logger.warning(f"Image OCR failed: {e}")
                return OcrAttempt()
            return OcrAttempt(text=text, rotation=0, score=score_text(text))

    async def best_rotation(self, image_path: Path, scratch: ScratchSpace) -> OcrAttempt:
        """
        Try the configured rotations in order and keep the best-scoring text.

        The search is sequential and stops as soon as one attempt scores above
        the "good enough" threshold.
        """
        best = OcrAttempt()
        for rotation in self.config.ocr_rotations:
            try:
                if rotation == 0:
                    candidate_path = image_path
                else:
                    candidate_path = await asyncio.to_thread(self._rotate, image_path, rotation, scratch)
                text = await self.engine.recognize(candidate_path)
            except ExternalToolError as e:
                logger.warning(f"OCR at rotation {rotation} failed: {e}")
                continue
            except OSError as e:
                logger.warning(f"Could not rotate {image_path.name} by {rotation}: {e}")
                continue

            score = score_text(text)
            logger.debug(f"Rotation {rotation}: score {score}")
            if score > best.score or (not best.text.strip() and text.strip()):
                best = OcrAttempt(text=text, rotation=rotation, score=score)
            if score > self.config.ocr_good_score:
                break
        return best

    @staticmethod
    def _rotate(image_path: Path, rotation: int, scratch: ScratchSpace) -> Path:
        rotated_path = scratch.path(f"{image_path.stem}_rot{rotation}", ".png")
        with Image.open(image_path) as image:
            # PIL rotates counter-clockwise
            image.rotate(-rotation, expand=True).save(rotated_path)
        return rotated_path
