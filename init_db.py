"""Initialize Supabase database schema for the question session engine."""
import os
from dotenv import load_dotenv

load_dotenv()

# SQL schema
SCHEMA_SQL = """
-- Reviewed question bank (read-only to the engine)
CREATE TABLE IF NOT EXISTS reviewed_exam_questions (
    id UUID PRIMARY KEY,
    stem TEXT NOT NULL,
    options JSONB NOT NULL CHECK (jsonb_array_length(options) BETWEEN 2 AND 5),
    answer_key CHAR(1) CHECK (answer_key IS NULL OR answer_key IN ('A', 'B', 'C', 'D', 'E')),
    correct_index INT CHECK (correct_index IS NULL OR correct_index BETWEEN 0 AND 4),
    explanation TEXT,
    exam VARCHAR(50) NOT NULL,
    topic VARCHAR(100),
    subtopic VARCHAR(100),
    difficulty VARCHAR(20),
    status VARCHAR(20) NOT NULL DEFAULT 'draft'
        CHECK (status IN ('draft', 'under_review', 'approved', 'archived', 'rejected')),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    CHECK (answer_key IS NOT NULL OR correct_index IS NOT NULL)
);

-- Attempts: one row per practice/test/exam sitting
CREATE TABLE IF NOT EXISTS exam_attempts (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    mode VARCHAR(20) NOT NULL CHECK (mode IN ('practice', 'test', 'exam')),
    source VARCHAR(20) NOT NULL DEFAULT 'reviewed',
    total_questions INT NOT NULL DEFAULT 0,
    question_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
    time_limit_sec INT CHECK (time_limit_sec IS NULL OR time_limit_sec > 0),
    started_at TIMESTAMPTZ DEFAULT NOW(),
    finished_at TIMESTAMPTZ,
    total_attempted INT NOT NULL DEFAULT 0,
    correct_count INT NOT NULL DEFAULT 0,
    duration_sec INT NOT NULL DEFAULT 0 CHECK (duration_sec >= 0),
    breakdown JSONB NOT NULL DEFAULT '{}'::jsonb,
    CHECK (correct_count >= 0 AND correct_count <= total_attempted),
    CHECK (total_attempted <= jsonb_array_length(question_ids))
);

-- Attempt items (one answer per question per attempt)
CREATE TABLE IF NOT EXISTS exam_attempt_items (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    attempt_id UUID NOT NULL REFERENCES exam_attempts(id) ON DELETE CASCADE,
    user_id UUID NOT NULL,
    question_id UUID NOT NULL REFERENCES reviewed_exam_questions(id),
    selected_key CHAR(1) NOT NULL,
    correct_key CHAR(1) NOT NULL,
    topic VARCHAR(100),
    position INT NOT NULL CHECK (position >= 1),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(attempt_id, question_id)
);

-- Per-question progress for signed-in users
CREATE TABLE IF NOT EXISTS user_question_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    question_id UUID NOT NULL REFERENCES reviewed_exam_questions(id) ON DELETE CASCADE,
    exam VARCHAR(50),
    attempts INT NOT NULL DEFAULT 0 CHECK (attempts >= 0),
    last_selected CHAR(1),
    is_correct BOOLEAN DEFAULT FALSE,
    is_flagged BOOLEAN DEFAULT FALSE,
    notes TEXT DEFAULT '',
    time_spent_seconds INT NOT NULL DEFAULT 0 CHECK (time_spent_seconds >= 0),
    started_at TIMESTAMPTZ DEFAULT NOW(),
    last_action_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(user_id, question_id)
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_reviewed_questions_exam_topic ON reviewed_exam_questions(exam, topic);
CREATE INDEX IF NOT EXISTS idx_reviewed_questions_status ON reviewed_exam_questions(status);
CREATE INDEX IF NOT EXISTS idx_exam_attempts_user_started ON exam_attempts(user_id, started_at DESC);
CREATE INDEX IF NOT EXISTS idx_exam_attempt_items_attempt ON exam_attempt_items(attempt_id, position);
CREATE INDEX IF NOT EXISTS idx_user_question_sessions_user ON user_question_sessions(user_id);
"""


def split_statements(sql: str) -> list[str]:
    """Split on ';' and drop comment-only fragments."""
    statements = []
    for chunk in sql.split(";"):
        lines = [line for line in chunk.strip().splitlines() if not line.strip().startswith("--")]
        stmt = "\n".join(lines).strip()
        if stmt:
            statements.append(stmt)
    return statements


def main():
    print("Initializing Supabase schema...")
    print(f"URL: {os.getenv('SUPABASE_URL')}")

    statements = split_statements(SCHEMA_SQL)
    for i, stmt in enumerate(statements, 1):
        print(f"Statement {i}/{len(statements)}: {stmt.splitlines()[0][:60]}...")

    print("\nNote: the Supabase client cannot run DDL; run this SQL in the Supabase SQL Editor:")
    print(SCHEMA_SQL)


if __name__ == "__main__":
    main()
