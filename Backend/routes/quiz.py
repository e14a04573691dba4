# routes/quiz.py
"""
Daily quiz API. Works signed in (Bearer token) or as a guest (guestToken).
"""
from flask import Blueprint, current_app, request, jsonify
from auth_middleware import is_admin_user, optional_auth
from services.quiz_service.errors import ValidationError
from services.quiz_service.tracker import ADMIN, USER, Identity

quiz_bp = Blueprint("quiz", __name__)


def _services():
    return current_app.extensions["quiz"]


def _body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("invalid_request", "JSON body must be an object")
    return data


def _identity(data=None) -> Identity:
    user = request.user
    if user is None:
        token = (data or {}).get("guestToken") or request.args.get("guestToken")
        return Identity.guest(token if isinstance(token, str) else None)
    kind = ADMIN if is_admin_user(user) else USER
    return Identity(kind, user["uid"], user.get("name") or user.get("email"))


def _submit_args(data):
    elapsed = data.get("elapsedMs")
    if elapsed is not None and (isinstance(elapsed, bool) or not isinstance(elapsed, (int, float))):
        raise ValidationError("invalid_request", "elapsedMs must be a number")
    if "answer" not in data:
        raise ValidationError("invalid_request", "answer is required")
    return data.get("questionId"), data.get("answer"), elapsed


@quiz_bp.get("/today")
@optional_auth
def today():
    """
    GET /api/quiz/today?date=today[&guestToken=...]

    Response:
    {"hasQuiz": true, "quizDate": "2025-03-01", "questionId": "quiz_campus_1a2b3c",
     "alreadyCompleted": false}
    """
    date = request.args.get("date", "today")
    return jsonify(_services().daily.today(_identity(), date)), 200


@quiz_bp.post("/start")
@optional_auth
def start():
    data = _body()
    return jsonify(_services().daily.start(_identity(data))), 200


@quiz_bp.post("/submit")
@optional_auth
def submit():
    """
    Request body:
    {"guestToken"?: "...", "questionId": "...", "answer": 2 | [0, 2], "elapsedMs": 12000}

    409 {"error": "rolled_over", "newQuestion": {...}} when the day's question changed.
    """
    data = _body()
    question_id, answer, elapsed = _submit_args(data)
    result = _services().daily.submit(_identity(data), question_id, answer, elapsed)
    return jsonify(result), 200


# -------------------- Practice --------------------

@quiz_bp.post("/practice/start")
@optional_auth
def practice_start():
    data = _body()
    return jsonify(_services().daily.start(_identity(data), practice=True)), 200


@quiz_bp.post("/practice/submit")
@optional_auth
def practice_submit():
    data = _body()
    question_id, answer, elapsed = _submit_args(data)
    result = _services().daily.submit(_identity(data), question_id, answer, elapsed, practice=True)
    return jsonify(result), 200
