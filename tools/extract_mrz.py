"""Command-line MRZ extraction.

Usage:
    python tools/extract_mrz.py passport.jpg [more.jpg ...] [--timeout 20] [--json]

Prints the extracted fields (or the user-facing error) for each image and
exits with status 1 when any image failed.
"""

import sys
import json
import asyncio
from pathlib import Path
from typing import List

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from core.logging import log
from core.errors import OcrError
from ocr.pipeline import MrzExtractor, ProgressUpdate, is_ocr_supported


def _print_progress(update: ProgressUpdate) -> None:
    log.debug(f"  {update.status:<14} {update.percentage:5.1f}%")


async def extract_files(paths: List[str], timeout: float = None, as_json: bool = False) -> int:
    """Extract MRZ fields from each file in turn.

    Returns:
        int: Number of files that failed
    """
    extractor = MrzExtractor()
    failures = 0
    report = []

    for path in paths:
        try:
            result = await extractor.extract(path, timeout=timeout, progress_callback=_print_progress)
        except OcrError as e:
            failures += 1
            report.append({"file": path, "error": e.to_dict()})
            if not as_json:
                print(f"{path}: [{e.code.value}] {e.message}")
            continue

        report.append({"file": path, "result": result.to_dict()})
        if not as_json:
            print(f"{path}:")
            print(f"  Passport number: {result.passport_number or '-'}")
            print(f"  Nationality:     {result.nationality or '-'}")
            print(f"  Birth date:      {result.birth_date or '-'}")
            print(f"  Expiry date:     {result.expiry_date or '-'}")

    if as_json:
        print(json.dumps(report, indent=2, ensure_ascii=False))

    return failures


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Extract passport MRZ fields from images")
    parser.add_argument("images", nargs="+", help="Image files (or http(s)/data URLs)")
    parser.add_argument("--timeout", type=float, default=None, help="Per-image timeout in seconds")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")

    args = parser.parse_args()

    if not is_ocr_supported():
        log.error("Tesseract is not available. Install it and/or set TESSERACT_CMD.")
        sys.exit(2)

    failed = asyncio.run(extract_files(args.images, timeout=args.timeout, as_json=args.json))
    sys.exit(1 if failed else 0)
