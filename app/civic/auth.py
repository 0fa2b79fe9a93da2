from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy import select
from werkzeug.security import check_password_hash

from app.civic.audit import record_event
from app.civic.db import db_session
from app.civic.models import User
from app.civic.rbac import Identity, require_login
from app.civic.security import rotate_csrf_token

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)


def _check_rate_limit(ip: str) -> bool:
    window = int(current_app.config.get("LOGIN_RATE_WINDOW", 300))
    limit = int(current_app.config.get("LOGIN_RATE_LIMIT", 5))
    cutoff = datetime.utcnow() - timedelta(seconds=window)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= limit


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
    }


@bp.post("/login")
def login():
    data = request.get_json(silent=True) if request.is_json else request.form
    data = data or {}
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        current_app.logger.warning("Login rate limit hit ip=%s request_id=%s", ip, g.request_id)
        return jsonify({"ok": False, "error": "rate_limited", "message": "Too many login attempts. Try again later."}), 429

    _record_attempt(ip)

    s = db_session()
    user = s.scalars(select(User).where(User.email == email)).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        return jsonify({"ok": False, "error": "invalid_credentials", "message": "Invalid credentials."}), 401

    session.clear()
    session["user_id"] = user.id
    session.permanent = True
    token = rotate_csrf_token()
    _login_attempts[ip].clear()

    user.last_login_at = datetime.utcnow()
    record_event(s, actor=Identity.from_user(user), action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"ok": True, "data": {"user": _user_dict(user), "csrf_token": token}})


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=Identity.from_user(user), action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"ok": True})


@bp.get("/me")
@require_login
def me():
    return jsonify({"ok": True, "data": _user_dict(g.current_user)})
