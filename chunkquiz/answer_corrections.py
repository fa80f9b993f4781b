"""
Offline utility that rewrites answer keys in stored chunk files.

Questions are identified by their 1-based global number, i.e. the position
of the question across all chunks in index order. Running it twice with the
same correction table leaves the files unchanged the second time.

Usage:
    python -m chunkquiz.answer_corrections <data_dir> <corrections.json>
"""
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def load_corrections(corrections_path: Path) -> Dict[int, str]:
    """
    Load a correction table.

    Accepts either an object mapping question numbers to letters
    (``{"1": "D", "2": "B"}``) or an array indexed by question number with
    an unused entry at position 0 (``["", "D", "B"]``). Empty entries are
    skipped.

    Raises:
        ValueError: If the file is not a valid correction table
    """
    with open(corrections_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, list):
        items = enumerate(data)
    elif isinstance(data, dict):
        items = data.items()
    else:
        raise ValueError("Correction table must be a JSON object or array")

    corrections = {}
    for key, letter in items:
        if not letter:
            continue
        try:
            number = int(key)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid question number in correction table: {key!r}")
        if number < 1:
            raise ValueError(f"Question numbers start at 1, got {number}")
        if not isinstance(letter, str) or len(letter) != 1:
            raise ValueError(f"Correction for question {number} must be a single letter, got {letter!r}")
        corrections[number] = letter

    return corrections


def correct_chunk(questions: List[Dict[str, Any]], chunk_id: int, chunk_size: int, corrections: Dict[int, str]) -> int:
    """
    Apply corrections to the questions of one chunk in place.

    Returns:
        Number of answers that changed
    """
    changed = 0
    for offset, question in enumerate(questions):
        number = chunk_id * chunk_size + offset + 1
        letter = corrections.get(number)
        if letter is None:
            continue
        if question.get("answer") != letter:
            question["answer"] = letter
            changed += 1
    return changed


def apply_corrections(
    data_dir: Path,
    corrections: Dict[int, str],
    index_resource: str = "questions_index.json",
) -> Dict[str, Any]:
    """
    Rewrite every chunk listed in the index with the corrected answers.

    A chunk that cannot be read or parsed is reported and skipped; the
    remaining chunks are still processed.

    Returns:
        Dictionary with updated files, changed answer count and errors
    """
    data_dir = Path(data_dir)
    summary = {
        'success': True,
        'updated_files': [],
        'changed_answers': 0,
        'errors': [],
    }

    try:
        with open(data_dir / index_resource, 'r', encoding='utf-8') as f:
            index = json.load(f)
        chunk_size = int(index["chunk_size"])
        files = list(index["files"])
    except (OSError, ValueError, KeyError, TypeError) as e:
        error_msg = f"Cannot read index {data_dir / index_resource}: {e}"
        logger.error(error_msg)
        summary['success'] = False
        summary['errors'].append(error_msg)
        return summary

    for chunk_id, file_name in enumerate(files):
        chunk_path = data_dir / file_name
        try:
            with open(chunk_path, 'r', encoding='utf-8') as f:
                questions = json.load(f)
            if not isinstance(questions, list):
                raise ValueError("chunk document must be a JSON array")

            changed = correct_chunk(questions, chunk_id, chunk_size, corrections)

            with open(chunk_path, 'w', encoding='utf-8') as f:
                json.dump(questions, f, indent=2, ensure_ascii=False)

        except (OSError, ValueError) as e:
            error_msg = f"Error updating {chunk_path}: {e}"
            logger.error(error_msg)
            summary['success'] = False
            summary['errors'].append(error_msg)
            continue

        summary['updated_files'].append(file_name)
        summary['changed_answers'] += changed
        logger.info(f"Updated {chunk_path} ({changed} answers changed)")

    return summary


def main(argv: Optional[List[str]] = None) -> int:
    import argparse
    parser = argparse.ArgumentParser(description="Rewrite answer keys in stored quiz chunk files")
    parser.add_argument("data_dir", type=Path, help="Directory holding the index and chunk files")
    parser.add_argument("corrections", type=Path, help="JSON correction table")
    parser.add_argument("--index", default="questions_index.json", help="Index file name")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        corrections = load_corrections(args.corrections)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot load corrections from {args.corrections}: {e}")
        return 1

    summary = apply_corrections(args.data_dir, corrections, args.index)
    print(f"Updated {len(summary['updated_files'])} files, {summary['changed_answers']} answers changed")
    if summary['errors']:
        print(f"{len(summary['errors'])} files failed; see log for details")
        return 1

    print("All answer corrections completed!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
