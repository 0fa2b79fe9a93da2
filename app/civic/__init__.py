import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request, session
from dotenv import load_dotenv

from app.civic.config import load_config
from app.civic.db import init_db, teardown_db_session
from app.civic.errors import CivicError
from app.civic.routes import bp as routes_bp
from app.civic.auth import bp as auth_bp, load_current_user
from app.civic.modules.elections.routes import bp as elections_bp
from app.civic.modules.candidates.routes import bp as candidates_bp
from app.civic.modules.voting.routes import bp as voting_bp

# Mutating endpoints that may be called without a CSRF token.
CSRF_EXEMPT_ENDPOINTS = {"voting.voting_verify"}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    logging.basicConfig(level=app.config["LOG_LEVEL"], format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    from app.civic.security import ensure_csrf_token, validate_csrf

    app.before_request(load_current_user)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED", True):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE") and request.path.startswith("/api/"):
            if request.endpoint in CSRF_EXEMPT_ENDPOINTS:
                return None
            if not validate_csrf(request):
                app.logger.warning("CSRF rejected path=%s request_id=%s", request.path, getattr(g, "request_id", None))
                return jsonify({"ok": False, "error": "csrf_failed", "message": "CSRF token missing or invalid."}), 400
        return None

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(elections_bp, url_prefix="/api/elections")
    app.register_blueprint(candidates_bp, url_prefix="/api/candidates")
    app.register_blueprint(voting_bp, url_prefix="/api/voting")

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(CivicError)
    def _civic_error(e: CivicError):
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        if e.status_code < 500:
            app.logger.warning(
                "%s %s -> %s %s: %s (request_id=%s)",
                request.method,
                request.path,
                e.status_code,
                e.code,
                e.message,
                getattr(g, "request_id", None),
            )
        return jsonify({"ok": False, "error": e.code, "message": e.message}), e.status_code

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": "not_found", "message": "Resource not found."}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": "method_not_allowed", "message": "Method not allowed."}), 405

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"ok": False, "error": "internal_error", "message": "Internal server error."}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
