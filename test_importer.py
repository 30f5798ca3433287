"""JSONL ingestion and schema script."""
import json

from conftest import FakeSupabase
from db import upsert_rows_bulk
from importer import load_and_transform, parse_line, run_import
from init_db import SCHEMA_SQL, split_statements


def line(**fields):
    base = {
        "question_id": "ext-1",
        "stem": "A 54-year-old presents with chest pain...",
        "options": ["Aspirin", "Morphine", "Oxygen", "Nitrates"],
        "correct_index": 0,
        "exam": "MRCEM Intermediate SBA",
        "topic": "Cardiology",
    }
    base.update(fields)
    return json.dumps(base)


def test_index_is_normalised_to_both_forms():
    row = parse_line(line(correct_index=2))
    assert row["answer_key"] == "C"
    assert row["correct_index"] == 2
    assert row["status"] == "approved"
    assert row["exam"] == "MRCEM Intermediate SBA"


def test_letter_is_normalised_to_both_forms():
    row = parse_line(line(correct_index=None, answer_key="d"))
    assert row["answer_key"] == "D"
    assert row["correct_index"] == 3


def test_ids_are_deterministic():
    assert parse_line(line())["id"] == parse_line(line(stem="Edited stem"))["id"]
    assert parse_line(line())["id"] != parse_line(line(question_id="ext-2"))["id"]


def test_invalid_lines_are_skipped():
    assert parse_line("") is None
    assert parse_line("{not json") is None
    assert parse_line(line(question_id=None)) is None
    assert parse_line(line(options=["only one"])) is None
    assert parse_line(line(options=list("ABCDEF"))) is None
    assert parse_line(line(correct_index=7)) is None
    assert parse_line(line(status="published")) is None


def test_legacy_exam_labels_and_status():
    row = parse_line(line(exam="MRCEM primary", status="in_review"))
    assert row["exam"] == "MRCEM Primary"
    assert row["status"] == "under_review"


def test_dry_run_reads_file(tmp_path):
    path = tmp_path / "questions.jsonl"
    path.write_text("\n".join([line(), "", line(question_id="ext-2", correct_index=1)]), encoding="utf-8")
    assert len(list(load_and_transform(path))) == 2
    rows = run_import(path, dry_run=True)
    assert [r["answer_key"] for r in rows] == ["A", "B"]


def test_bulk_upsert_dedupes_and_chunks():
    client = FakeSupabase()
    rows = [parse_line(line(question_id=f"ext-{i}")) for i in range(5)] + [parse_line(line(question_id="ext-0"))]
    upsert_rows_bulk(client, "reviewed_exam_questions", rows, chunk_size=2)
    assert len(client.tables["reviewed_exam_questions"]) == 5
    assert client.calls.count(("reviewed_exam_questions", "upsert")) == 3


def test_schema_statements():
    statements = split_statements(SCHEMA_SQL)
    tables = [s for s in statements if s.startswith("CREATE TABLE")]
    assert len(tables) == 4
    assert all(not s.startswith("--") for s in statements)
    assert any("exam_attempt_items" in s and "UNIQUE(attempt_id, question_id)" in s for s in tables)
