# app.py
"""
Main Flask application entrypoint.

- Loads env/config
- Configures logging
- Initializes Firebase Admin (token verification + Firestore)
- Builds the quiz services and stores them on app.extensions["quiz"]
- Enables CORS for /api/*
- Registers blueprints: Quiz, Leaderboard, Admin
"""

from __future__ import annotations
import logging
import os
from datetime import datetime, timezone
from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

# ---- Load .env early ----
load_dotenv()

# ---- Config & blueprints ----
from config import Config
from routes.admin import admin_bp
from routes.leaderboard import leaderboard_bp
from routes.quiz import quiz_bp
from services.quiz_service.container import build_services
from services.quiz_service.errors import QuizError
from services.quiz_service.store import init_firebase_admin

logger = logging.getLogger(__name__)


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------
def create_app(config=None, store=None, clock=None, init_firebase: bool = True) -> Flask:
    """
    config: Config (default) or a subclass overriding its attributes
    store/clock: injected in tests; production builds them from config
    """
    config = config or Config
    _configure_logging(config.LOG_LEVEL)

    app = Flask(__name__)
    app.config.from_object(config)

    if init_firebase:
        init_firebase_admin()

    app.extensions["quiz"] = build_services(config, store=store, clock=clock)

    CORS(app, resources={r"/api/*": {"origins": config.CORS_ORIGINS}})

    # --- Register blueprints ---
    app.register_blueprint(quiz_bp, url_prefix="/api/quiz")                 # guests or signed in
    app.register_blueprint(leaderboard_bp, url_prefix="/api/leaderboard")   # public
    app.register_blueprint(admin_bp, url_prefix="/api/admin")               # admin only

    # --- Health (public) ---
    @app.get("/api/health")
    def health():
        return jsonify({
            "ok": True,
            "service": "daily-quiz",
            "quizDate": app.extensions["quiz"].today_key(),
            "serverTime": datetime.now(timezone.utc).isoformat(),
        })

    # --- JSON error handlers ---
    @app.errorhandler(QuizError)
    def handle_quiz_error(err):
        if err.status >= 500:
            logger.error("[quiz] %s: %s", err.code, err.message)
        elif err.status == 409:
            logger.info("[quiz] Conflict %s: %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(400)
    def handle_400(err):
        return jsonify({"ok": False, "error": str(err)}), 400

    @app.errorhandler(404)
    def handle_404(err):
        return jsonify({"ok": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def handle_405(err):
        return jsonify({"ok": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def handle_500(err):
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        if isinstance(err, HTTPException):
            return jsonify({"ok": False, "error": err.description}), err.code
        logger.exception("[quiz] Unhandled error")
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return app


# ---------------------------------------------------------------------
# Dev Server Launcher
# ---------------------------------------------------------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("PORT", "5001"))
    app.run(host="0.0.0.0", port=port, debug=True)
