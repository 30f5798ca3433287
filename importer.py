"""Ingest .jsonl into reviewed_exam_questions: normalise the correct answer to both letter and index; bulk UPSERT."""
import json
import argparse
import logging
from pathlib import Path
from uuid import uuid5, NAMESPACE_DNS

from db import get_supabase_uncached, upsert_rows_bulk
from engine import MAX_OPTIONS, MIN_OPTIONS
from assessment.errors import LoadFailure
from assessment.exams import map_enum_to_label, map_label_to_enum
from assessment.questions import CorrectAnswer, REVIEW_STATUSES, parse_options, normalize_review_status
from assessment.repository import QUESTIONS_TABLE

logger = logging.getLogger(__name__)

DEFAULT_JSONL = Path(__file__).resolve().parent / "reviewed_questions.jsonl"
ID_NAMESPACE = "reviewed-exam-questions"


def parse_line(line: str, default_status: str = "approved") -> dict | None:
    """Parse one JSONL line into a reviewed_exam_questions row. Returns None if invalid/skip."""
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        logger.warning("Skipping line that is not JSON")
        return None
    external_id = raw.get("question_id") or raw.get("id")
    if not external_id:
        return None
    stem = raw.get("stem") or raw.get("question") or raw.get("text") or ""
    if not stem.strip():
        return None
    options, _ = parse_options(raw.get("options"))
    if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        logger.warning(f"Skipping {external_id}: {len(options)} options")
        return None

    # Sources disagree on naming; both shapes map onto answer_key / correct_index
    candidate = {
        "id": external_id,
        "answer_key": raw.get("answer_key") or raw.get("correct_answer"),
        "correct_index": raw.get("correct_index", raw.get("correct_option")),
    }
    try:
        correct = CorrectAnswer.from_row(candidate, len(options))
    except LoadFailure:
        logger.warning(f"Skipping {external_id}: no usable correct answer")
        return None

    status = normalize_review_status(raw.get("status")) or default_status
    if status not in REVIEW_STATUSES:
        logger.warning(f"Skipping {external_id}: unknown status {status!r}")
        return None
    steps = raw.get("explanation_steps")
    explanation = raw.get("explanation") or (" ".join(steps) if isinstance(steps, list) else "")

    return {
        "id": str(uuid5(NAMESPACE_DNS, f"{ID_NAMESPACE}/{external_id}")),
        "stem": stem.strip(),
        "options": raw.get("options"),
        "answer_key": correct.letter,
        "correct_index": correct.index,
        "explanation": explanation[:50000] if explanation else "",
        "exam": map_enum_to_label(map_label_to_enum(raw.get("exam"))),
        "topic": (raw.get("topic") or "").strip() or None,
        "subtopic": (raw.get("subtopic") or "").strip() or None,
        "difficulty": raw.get("difficulty"),
        "status": status,
    }


def load_and_transform(path: Path, default_status: str = "approved"):
    """Read JSONL and yield transformed question rows."""
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            row = parse_line(line, default_status=default_status)
            if row:
                yield row


def run_import(jsonl_path: Path | None = None, chunk_size: int = 200, dry_run: bool = False,
               default_status: str = "approved"):
    path = jsonl_path or DEFAULT_JSONL
    if not path.exists():
        raise FileNotFoundError(f"JSONL not found: {path}")
    rows = list(load_and_transform(path, default_status=default_status))
    if dry_run:
        print(f"Dry run: would upsert {len(rows)} questions from {path}")
        if rows:
            print("Sample row:", rows[0])
        return rows
    client = get_supabase_uncached()
    upsert_rows_bulk(client, QUESTIONS_TABLE, rows, chunk_size=chunk_size)
    print(f"Upserted {len(rows)} questions from {path}")
    return rows


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Import reviewed exam questions from JSONL into Supabase.")
    parser.add_argument(
        "jsonl",
        nargs="?",
        default=None,
        help=f"Path to .jsonl (default: {DEFAULT_JSONL})",
    )
    parser.add_argument("--chunk-size", type=int, default=200, help="Upsert chunk size (default 200)")
    parser.add_argument("--dry-run", action="store_true", help="Parse only, do not upsert")
    parser.add_argument("--status", default="approved", choices=REVIEW_STATUSES,
                        help="Status for rows that do not carry one (default approved)")
    args = parser.parse_args()
    path = Path(args.jsonl) if args.jsonl else DEFAULT_JSONL
    run_import(jsonl_path=path, chunk_size=args.chunk_size, dry_run=args.dry_run, default_status=args.status)
