# routes/leaderboard.py
from flask import Blueprint, current_app, request, jsonify
from services.quiz_service.leaderboard import build_leaderboard, parse_limit

leaderboard_bp = Blueprint("leaderboard", __name__)


@leaderboard_bp.get("")
def leaderboard():
    """
    GET /api/leaderboard?limit=50

    {"entries": [{"rank": 1, "username": "...", "longestStreak": 10,
                  "currentStreak": 3, "totalPoints": 500}, ...]}
    """
    services = current_app.extensions["quiz"]
    limit = parse_limit(
        request.args.get("limit"),
        services.leaderboard_default_limit,
        services.leaderboard_max_limit,
    )
    return jsonify(build_leaderboard(services.progress, services.today_key(), limit)), 200
