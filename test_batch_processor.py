"""
Tests for directory batch processing and the command line runner.
"""

import json

import pytest
from openpyxl import Workbook

from batch_processor import RESULT_FILENAME, BatchProcessor, document_output_names, load_attachment
from document_pipeline import DocumentPipeline
from extraction_config import ExtractionConfig
from ocr_fallback import OcrOutcome
from run_processor import build_parser


class NoOcr:
    async def ocr_pdf(self, content, pages=None):
        return OcrOutcome()


def write_request(directory):
    wb = Workbook()
    ws = wb.active
    ws.append(["Code Article", "Désignation", "Qté"])
    ws.append(["HTM-56-4T", "Vanne papillon DN50", 2])
    wb.save(directory / "BI-19716.xlsx")
    (directory / "notes.txt").write_text("not an attachment format", encoding="utf-8")


def make_processor(output_dir, **kwargs):
    config = ExtractionConfig()
    pipeline = DocumentPipeline(config, ocr=NoOcr())
    return BatchProcessor(output_dir=str(output_dir), config=config, pipeline=pipeline, **kwargs)


def test_load_attachment_guesses_content_type(tmp_path):
    path = tmp_path / "demande.pdf"
    path.write_bytes(b"%PDF-1.4")
    attachment = load_attachment(path)

    assert attachment.filename == "demande.pdf"
    assert attachment.content_type == "application/pdf"
    assert attachment.size == 8


def test_process_directory_writes_results(tmp_path):
    input_dir = tmp_path / "request"
    input_dir.mkdir()
    write_request(input_dir)
    output_dir = tmp_path / "out"

    processor = make_processor(output_dir)
    batch = processor.process_directory(str(input_dir))

    assert batch.total_files == 1
    assert batch.failed == 0
    assert batch.classifications[0]['filename'] == "BI-19716.xlsx"
    assert batch.summary["batch_statistics"]["total_items"] == 1
    assert batch.summary["batch_statistics"]["extraction_methods"] == {"spreadsheet": 1}

    combined = json.loads((output_dir / RESULT_FILENAME).read_text(encoding="utf-8"))
    assert combined["items"][0]["description"] == "Vanne papillon DN50"
    assert combined["items"][0]["reference"] == "HTM-56-4T"
    assert (output_dir / "BI-19716.json").exists()


def test_process_directory_with_body_only(tmp_path):
    input_dir = tmp_path / "empty"
    input_dir.mkdir()

    batch = make_processor(tmp_path / "out", save_individual_files=False).process_directory(
        str(input_dir), body="Merci de nous coter 2 pièces de pompe hydraulique.", subject="RFQ-20450"
    )

    assert batch.total_files == 0
    assert batch.result.rfq_number == "20450"
    assert batch.result.needs_manual_review
    assert not (tmp_path / "out" / "email_body.json").exists()


def test_missing_directory_raises(tmp_path):
    processor = make_processor(tmp_path / "out")
    with pytest.raises(FileNotFoundError):
        processor.find_files(str(tmp_path / "missing"))


def test_command_line_arguments():
    args = build_parser().parse_args(["./request", "--subject", "RFQ PR-123456", "-o", "out", "--json-only"])

    assert args.path == "./request"
    assert args.subject == "RFQ PR-123456"
    assert args.output_dir == "out"
    assert args.json_only
    assert args.body_file is None


def test_output_names_keep_extension_on_stem_collision():
    names = document_output_names(["BI-1.pdf", "BI-1.xlsx", "photo.jpg", "extraction_result.pdf"])

    assert names == ["BI-1.json", "BI-1.xlsx.json", "photo.json", "extraction_result.pdf.json"]
