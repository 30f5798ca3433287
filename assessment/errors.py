"""
Error taxonomy for the question session engine.

Callers branch on the class: InsufficientQuestions sends the learner back to
configuration, LoadFailure shows a transient notice then redirects,
AuthRequired prompts sign-in. PersistenceFailure never reaches the UI; the
attempt writer queues the failed write and retries it on the next tick.
"""
from typing import Optional

from engine import LOAD_FAILURE_REDIRECT_SEC


class AssessmentError(Exception):
    """Base class for engine errors."""


class InsufficientQuestions(AssessmentError):
    def __init__(self, exam_type: str, topic: Optional[str] = None):
        self.exam_type = exam_type
        self.topic = topic
        where = f"{exam_type} / {topic}" if topic else exam_type
        super().__init__(
            f"No reviewed questions found for {where}. "
            "Try removing the topic filter or choose a different exam."
        )


class LoadFailure(AssessmentError):
    def __init__(self, message: str, redirect_after: int = LOAD_FAILURE_REDIRECT_SEC):
        self.redirect_after = redirect_after
        super().__init__(message)


class AttemptNotFound(LoadFailure):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt {attempt_id} not found")


class PersistenceFailure(AssessmentError):
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}" if cause else f"{operation} failed")


class AuthRequired(AssessmentError):
    def __init__(self, action: str = "start an attempt"):
        self.action = action
        super().__init__(f"Sign in to {action}")


def error_message(err: object, fallback: str = "Something went wrong") -> str:
    """Best-effort human message from an exception or an error payload dict."""
    if isinstance(err, dict):
        errors = err.get("errors")
        if isinstance(errors, list) and errors:
            return ", ".join(f"{e.get('field')}: {e.get('message')}" for e in errors if isinstance(e, dict))
        for key in ("message", "error"):
            if isinstance(err.get(key), str) and err[key]:
                return err[key]
        if isinstance(err.get("code"), str):
            return f"{fallback} ({err['code']})"
        return fallback
    if isinstance(err, BaseException):
        msg = str(err)
        return msg or fallback
    return fallback
