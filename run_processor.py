#!/usr/bin/env python3
"""
Procurement Document Extraction Runner

Processes the attachments of one request email from the command line:
- a directory of attachment files (PDF, Excel, Word, images)
- or a single attachment file
- optionally the email body (--body-file) and subject (--subject)

Prints a summary and writes the JSON results to the output directory.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from batch_processor import BatchProcessor, load_attachment
from document_pipeline import DocumentPipeline
from extraction_config import ConfigurationManager

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Procurement Document Extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Extract all attachments of a request stored in a directory
  python run_processor.py ./request_42/

  # Include the email body and subject
  python run_processor.py ./request_42/ --body-file body.txt --subject "RFQ PR-123456"

  # Extract one attachment and print its JSON
  python run_processor.py BI-19716.pdf --json-only
        """
    )
    parser.add_argument('path', help='Attachment file or directory of attachments')
    parser.add_argument('--body-file', help='Text file holding the email body')
    parser.add_argument('--subject', default='', help='Email subject')
    parser.add_argument('--output-dir', '-o', default='./output', help='Output directory')
    parser.add_argument('--config', help='Configuration file or directory (default: ./config)')
    parser.add_argument('--json-only', action='store_true', help='Output only JSON to stdout')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    parser.add_argument('--quiet', '-q', action='store_true', help='Suppress all output except results')
    return parser


def main(argv=None) -> int:
    """Main entry point for command-line usage."""
    args = build_parser().parse_args(argv)

    if args.quiet or args.json_only:
        logging.getLogger().setLevel(logging.ERROR)
    elif args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = ConfigurationManager(args.config).config
    body = Path(args.body_file).read_text(encoding='utf-8') if args.body_file else None
    path = Path(args.path)

    try:
        if path.is_file():
            pipeline = DocumentPipeline(config)
            result = asyncio.run(pipeline.process_request([load_attachment(path)], body, args.subject))
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
            return 0

        processor = BatchProcessor(output_dir=args.output_dir, config=config)
        batch_result = processor.process_directory(str(path), body, args.subject)
    except (FileNotFoundError, OSError) as e:
        logger.error(f"Error during processing: {e}")
        return 1

    if args.json_only:
        print(batch_result.result.to_json())
        return 0

    print("\n" + "=" * 70)
    print("EXTRACTION COMPLETED")
    print("=" * 70)
    print(f"Attachment files: {batch_result.total_files}")
    print(f"Failed: {batch_result.failed}")
    print(f"Line items: {len(batch_result.result.items)}")
    print(f"Client reference: {batch_result.result.rfq_number or '-'}")
    print(f"Manual review needed: {'yes' if batch_result.result.needs_manual_review else 'no'}")
    print(f"Processing time: {batch_result.processing_time:.2f} seconds")

    print("\nAttachments:")
    for c in batch_result.classifications:
        related = f" -> {c['related_to']}" if c['related_to'] else ""
        print(f"  - {c['filename']}: {c['category']} ({c['confidence']}%){related}")

    print("\nDocuments:")
    for document in batch_result.result.documents:
        flag = " [verify]" if document.needs_verification else ""
        print(f"  - {document.filename}: {len(document.items)} item(s) via {document.extraction_method}{flag}")

    print(f"\nResults saved to {processor.output_dir}")
    return 0 if batch_result.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
