# routes/admin.py
"""
Admin API: question bank CRUD, schedule management, test submissions.
Every route requires a Firebase token belonging to an admin.
"""
from flask import Blueprint, current_app, request, jsonify
from auth_middleware import require_admin
from services.quiz_service.errors import ValidationError

admin_bp = Blueprint("admin", __name__)


def _services():
    return current_app.extensions["quiz"]


def _json_object():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("invalid_request", "Invalid JSON body")
    return data


# -------------------- Questions --------------------

@admin_bp.get("/questions")
@require_admin
def list_questions():
    return jsonify({"questions": _services().admin.list()}), 200


@admin_bp.post("/questions")
@require_admin
def create_question():
    return jsonify({"question": _services().admin.create(_json_object())}), 201


@admin_bp.get("/questions/<question_id>")
@require_admin
def get_question(question_id):
    return jsonify({"question": _services().admin.get(question_id)}), 200


@admin_bp.put("/questions/<question_id>")
@require_admin
def update_question(question_id):
    return jsonify({"question": _services().admin.update(question_id, _json_object())}), 200


@admin_bp.delete("/questions/<question_id>")
@require_admin
def delete_question(question_id):
    return jsonify(_services().admin.delete(question_id)), 200


# -------------------- Schedule --------------------

@admin_bp.get("/schedule")
@require_admin
def list_schedule():
    """GET /api/admin/schedule?start=2025-03-01&end=2025-03-31"""
    entries = _services().schedule.list(request.args.get("start"), request.args.get("end"))
    return jsonify({"schedule": entries}), 200


@admin_bp.post("/schedule")
@require_admin
def assign_schedule():
    """
    Request body: {"date": "2025-03-01", "questionId": "..."}
    409 already_scheduled when the date has an entry; use PUT to overwrite.
    """
    data = _json_object()
    services = _services()
    entry = services.schedule.assign(data.get("date"), data.get("questionId"), services.today_key())
    return jsonify({"entry": entry}), 201


@admin_bp.put("/schedule/<date_key>")
@require_admin
def overwrite_schedule(date_key):
    data = _json_object()
    services = _services()
    entry = services.schedule.overwrite(date_key, data.get("questionId"), services.today_key())
    return jsonify({"entry": entry}), 200


# -------------------- Testing --------------------

@admin_bp.post("/test/submit")
@require_admin
def test_submit():
    data = _json_object()
    result = _services().admin.test_submit(data.get("questionId"), data.get("answer"), data.get("elapsedMs"))
    return jsonify(result), 200
