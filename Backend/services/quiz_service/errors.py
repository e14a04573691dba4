# services/quiz_service/errors.py
"""
Quiz error taxonomy. Each error carries a stable `code` for clients, an HTTP
status, and optional context fields rendered alongside the code.

    ValidationError  400  bad input, rejected before any state change
    NotFoundError    404  unknown question id / schedule date
    ConflictError    409  expected business conflict (already scheduled, ...)
    RolloverError    409  the day's question changed under the client
    ThrottledError   429  attempt limit reached
"""

from typing import Any, Dict


class QuizError(Exception):
    status = 500

    def __init__(self, code: str, message: str = "", **context: Any):
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code, "message": self.message, **self.context}


class ValidationError(QuizError):
    status = 400


class NotFoundError(QuizError):
    status = 404


class ConflictError(QuizError):
    status = 409


class RolloverError(ConflictError):
    def __init__(self, new_question, quiz_date: str):
        super().__init__(
            "rolled_over",
            "The daily quiz rolled over; fetch the new question",
            rollover=True,
            newQuestion=new_question,
            quizDate=quiz_date,
        )


class ThrottledError(QuizError):
    status = 429
