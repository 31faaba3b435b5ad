"""
Batch Attachment Processing Module

This module processes a directory of attachment files as the attachments of
one request email, optionally together with the email body, and writes one
JSON file per extracted document plus the combined extraction result.
"""

import asyncio
import json
import logging
import mimetypes
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from document_pipeline import DocumentPipeline, EXTENSION_FORMATS
from extraction_config import ExtractionConfig
from extraction_schema import Attachment, ExtractionResult

logger = logging.getLogger(__name__)

RESULT_FILENAME = "extraction_result.json"


def document_output_names(filenames: List[str]) -> List[str]:
    """
    Pick the per-document JSON file name for each extracted document.

    The name is ``<stem>.json``. When two documents share a stem (``BI-1.pdf``
    and ``BI-1.xlsx``) the later ones keep their extension, ``BI-1.xlsx.json``.
    """
    names: List[str] = []
    taken = {RESULT_FILENAME}
    for filename in filenames:
        name = Path(filename).stem + ".json"
        if name in taken:
            fallback = Path(filename).name + ".json"
            logger.warning(f"Output name {name} already used, saving {filename} as {fallback}")
            name = fallback
        taken.add(name)
        names.append(name)
    return names


@dataclass
class BatchResult:
    """Container for batch processing results."""
    total_files: int
    successful: int
    failed: int
    processing_time: float
    result: ExtractionResult
    classifications: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)


def load_attachment(path: Path) -> Attachment:
    content_type, _ = mimetypes.guess_type(path.name)
    return Attachment(
        filename=path.name,
        content_type=content_type or "application/octet-stream",
        content=path.read_bytes(),
    )


class BatchProcessor:
    """
    Processes every supported file of a directory as one request.
    """

    def __init__(self, output_dir: str = "./output", config: Optional[ExtractionConfig] = None,
                 save_individual_files: bool = True, pipeline: Optional[DocumentPipeline] = None):
        """
        Initialize the batch processor.

        Args:
            output_dir: Directory for output files
            config: Extraction configuration (process-wide default when None)
            save_individual_files: Whether to write one JSON file per document
            pipeline: Pipeline to use instead of a new one
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.save_individual_files = save_individual_files
        self.pipeline = pipeline or DocumentPipeline(config)

        logger.info(f"BatchProcessor initialized, output directory: {self.output_dir}")

    def find_files(self, input_dir: str) -> List[Path]:
        input_path = Path(input_dir)
        if not input_path.exists():
            raise FileNotFoundError(f"Input directory not found: {input_dir}")
        return sorted(
            path for path in input_path.iterdir()
            if path.is_file() and path.suffix.lower().lstrip('.') in EXTENSION_FORMATS
        )

    def process_directory(self, input_dir: str, body: Optional[str] = None, subject: str = "") -> BatchResult:
        """
        Process all supported files in a directory.

        Args:
            input_dir: Directory containing the attachment files
            body: Optional email body text
            subject: Optional email subject

        Returns:
            BatchResult containing the assembled extraction result
        """
        files = self.find_files(input_dir)
        if not files and not body:
            logger.warning(f"No supported files found in {input_dir}")
        else:
            logger.info(f"Found {len(files)} attachment file(s) to process")
        return asyncio.run(self.process_files(files, body, subject))

    async def process_files(self, files: List[Path], body: Optional[str] = None, subject: str = "") -> BatchResult:
        start_time = time.time()
        attachments = [load_attachment(path) for path in files]

        classified = self.pipeline.classify_attachments(attachments)
        result = await self.pipeline.process_request(attachments, body, subject)

        errors = [
            {'file_path': str(path), 'status': 'failed', 'errors': ['extraction failed, placeholder emitted']}
            for path, document in zip(files, result.documents) if document.extraction_method == 'failed'
        ]
        if self.save_individual_files:
            names = document_output_names([document.filename for document in result.documents])
            for name, document in zip(names, result.documents):
                self._save_json(name, document.to_dict())
        self._save_json(RESULT_FILENAME, result.to_dict())

        processing_time = time.time() - start_time
        batch_result = BatchResult(
            total_files=len(files),
            successful=len(files) - len(errors),
            failed=len(errors),
            processing_time=processing_time,
            result=result,
            classifications=[
                {
                    'filename': c.filename,
                    'category': c.category.value,
                    'confidence': c.confidence,
                    'reason': c.reason,
                    'related_to': c.related_to,
                    'brand': c.brand,
                }
                for c in classified
            ],
            errors=errors,
            summary=self._create_batch_summary(len(files), len(errors), result, processing_time, classified),
        )

        logger.info(f"Batch processing completed: {batch_result.successful}/{batch_result.total_files} "
                    f"successful in {processing_time:.2f}s")
        return batch_result

    def _save_json(self, name: str, data: Dict[str, Any]) -> None:
        output_file = self.output_dir / name
        try:
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            logger.info(f"Saved {output_file}")
        except OSError as e:
            logger.error(f"Error saving {output_file}: {e}")

    def _create_batch_summary(self, total_files: int, failed: int, result: ExtractionResult,
                              processing_time: float, classified) -> Dict[str, Any]:
        methods: Dict[str, int] = {}
        for document in result.documents:
            methods[document.extraction_method] = methods.get(document.extraction_method, 0) + 1

        return {
            "batch_statistics": {
                "total_files": total_files,
                "failed_extractions": failed,
                "total_items": len(result.items),
                "extraction_methods": methods,
                "total_processing_time_seconds": round(processing_time, 2),
            },
            "request": {
                "rfq_number": result.rfq_number,
                "needs_manual_review": result.needs_manual_review,
                "all_same_brand": self.pipeline.all_same_brand(classified),
                "brands": list(self.pipeline.group_by_brand(classified).keys()),
            },
            "processing_info": {
                "output_directory": str(self.output_dir),
                "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
            },
        }


def process_attachment_batch(input_dir: str, **kwargs) -> BatchResult:
    """
    Convenience function to process a directory of attachments.

    Args:
        input_dir: Directory containing attachment files
        **kwargs: Additional arguments for BatchProcessor

    Returns:
        BatchResult
    """
    processor = BatchProcessor(**kwargs)
    return processor.process_directory(input_dir)
