"""
Shared pytest fixtures: an in-memory stand-in for the Supabase query builder
and a manually advanced clock. No network is touched.
"""
import copy
from types import SimpleNamespace
from uuid import uuid4

import pytest

from assessment.attempts import AttemptStore
from assessment.repository import QuestionRepository
from assessment.service import AssessmentService
from assessment.progress import LocalProgressStore, ProgressTracker, SupabaseProgressStore


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.on_conflict = None
        self._limit = None
        self._order = None

    # --- operations ---
    def select(self, *columns, count=None):
        self.op = "select"
        return self

    def insert(self, rows):
        self.op, self.payload = "insert", rows
        return self

    def update(self, values):
        self.op, self.payload = "update", values
        return self

    def upsert(self, rows, on_conflict=None):
        self.op, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    # --- filters ---
    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def is_(self, column, value):
        if value == "null":
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: r.get(column) is value)
        return self

    def match(self, criteria):
        for column, value in criteria.items():
            self.eq(column, value)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    # --- execution ---
    def _matching(self, rows):
        return [r for r in rows if all(f(r) for f in self.filters)]

    def execute(self):
        self.client.calls.append((self.table, self.op))
        if self.table in self.client.failing:
            raise ConnectionError(f"{self.table} unavailable")
        rows = self.client.tables.setdefault(self.table, [])
        if self.op == "select":
            found = self._matching(rows)
            if self._order:
                column, desc = self._order
                found = sorted(found, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
            if self._limit is not None:
                found = found[: self._limit]
            return SimpleNamespace(data=copy.deepcopy(found), count=len(found))
        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for row in payload:
                row = {k: v for k, v in copy.deepcopy(row).items()}
                row.setdefault("id", str(uuid4()))
                row.setdefault("finished_at", None)
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return SimpleNamespace(data=inserted)
        if self.op == "update":
            updated = []
            for row in self._matching(rows):
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated)
        if self.op == "upsert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            out = []
            for row in payload:
                existing = next((r for r in rows if all(r.get(k) == row.get(k) for k in keys)), None)
                if existing is None:
                    existing = {}
                    rows.append(existing)
                existing.update(copy.deepcopy(row))
                out.append(copy.deepcopy(existing))
            return SimpleNamespace(data=out)
        if self.op == "delete":
            doomed = self._matching(rows)
            self.client.tables[self.table] = [r for r in rows if r not in doomed]
            return SimpleNamespace(data=doomed)
        raise AssertionError(f"unsupported op {self.op}")


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.failing = set()
        self.calls = []

    def table(self, name):
        return FakeQuery(self, name)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def question_row(qid, exam="MRCEM Intermediate SBA", topic="Cardiology", correct_index=0,
                 answer_key=None, status="approved", n_options=4, **extra):
    row = {
        "id": qid,
        "stem": f"Stem of {qid}",
        "options": [f"{qid} option {i}" for i in range(n_options)],
        "correct_index": correct_index,
        "answer_key": answer_key,
        "explanation": f"Because {qid}",
        "exam": exam,
        "topic": topic,
        "subtopic": None,
        "difficulty": "medium",
        "status": status,
    }
    row.update(extra)
    return row


@pytest.fixture
def client():
    return FakeSupabase()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bank(client):
    """12 Cardiology + 8 Respiratory SBA questions, 5 Primary, plus non-approved noise."""
    rows = []
    rows += [question_row(f"card-{i}", topic="Cardiology", correct_index=i % 4) for i in range(12)]
    rows += [question_row(f"resp-{i}", topic="Respiratory", correct_index=(i + 1) % 4) for i in range(8)]
    rows += [question_row(f"prim-{i}", exam="MRCEM Primary", topic="Anatomy") for i in range(5)]
    rows += [question_row("draft-0", status="draft"), question_row("arch-0", status="archived")]
    client.tables["reviewed_exam_questions"] = rows
    return rows


@pytest.fixture
def service(client, clock, bank, tmp_path):
    tracker = ProgressTracker(
        local=LocalProgressStore(tmp_path / "progress.json"),
        device="device-test",
        remote=SupabaseProgressStore(client),
    )
    return AssessmentService(
        QuestionRepository(client), AttemptStore(client), progress=tracker, clock=clock,
    )
