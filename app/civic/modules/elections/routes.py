from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.civic.db import db_session
from app.civic.rbac import current_identity, require_login
from app.civic.utils import iso_utc, json_body, parse_datetime

from .models import Election
from .service import (
    activate_election,
    cancel_election,
    complete_election,
    create_election,
    get_election,
    get_election_status,
    list_active_elections,
    list_elections,
    list_upcoming_elections,
    publish_election,
    update_election,
)

bp = Blueprint("elections", __name__)


def election_to_dict(e: Election) -> dict:
    return {
        "id": e.id,
        "title": e.title,
        "description": e.description,
        "election_type": e.election_type,
        "status": e.status,
        "start_date": iso_utc(e.start_date),
        "end_date": iso_utc(e.end_date),
        "jurisdiction": e.jurisdiction,
        "requires_verification": e.requires_verification,
        "allows_absentee_voting": e.allows_absentee_voting,
        "created_by_user_id": e.created_by_user_id,
        "created_at": iso_utc(e.created_at),
        "updated_at": iso_utc(e.updated_at),
    }


@bp.post("/")
@require_login
def elections_create():
    s = db_session()
    election = create_election(s, json_body(), current_identity())
    s.commit()
    return jsonify({"ok": True, "data": election_to_dict(election)}), 201


@bp.get("/")
def elections_list():
    s = db_session()
    args = request.args
    rows = list_elections(
        s,
        status=(args.get("status") or "").strip() or None,
        election_type=(args.get("election_type") or "").strip() or None,
        jurisdiction=(args.get("jurisdiction") or "").strip() or None,
        start_from=parse_datetime(args.get("start_from"), field="start_from"),
        start_to=parse_datetime(args.get("start_to"), field="start_to"),
    )
    return jsonify({"ok": True, "data": [election_to_dict(e) for e in rows]})


@bp.get("/active")
def elections_active():
    s = db_session()
    return jsonify({"ok": True, "data": [election_to_dict(e) for e in list_active_elections(s)]})


@bp.get("/upcoming")
def elections_upcoming():
    s = db_session()
    return jsonify({"ok": True, "data": [election_to_dict(e) for e in list_upcoming_elections(s)]})


@bp.get("/<int:election_id>")
def elections_get(election_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": election_to_dict(get_election(s, election_id))})


@bp.put("/<int:election_id>")
@require_login
def elections_update(election_id: int):
    s = db_session()
    election = update_election(s, election_id, json_body(), current_identity())
    s.commit()
    return jsonify({"ok": True, "data": election_to_dict(election)})


@bp.get("/<int:election_id>/status")
def elections_status(election_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": get_election_status(s, election_id)})


@bp.post("/<int:election_id>/publish")
@require_login
def elections_publish(election_id: int):
    s = db_session()
    election = publish_election(s, election_id, current_identity())
    s.commit()
    return jsonify({"ok": True, "data": election_to_dict(election)})


@bp.post("/<int:election_id>/activate")
@require_login
def elections_activate(election_id: int):
    s = db_session()
    election = activate_election(s, election_id, current_identity())
    s.commit()
    return jsonify({"ok": True, "data": election_to_dict(election)})


@bp.post("/<int:election_id>/complete")
@require_login
def elections_complete(election_id: int):
    s = db_session()
    election = complete_election(s, election_id, current_identity())
    s.commit()
    return jsonify({"ok": True, "data": election_to_dict(election)})


@bp.post("/<int:election_id>/cancel")
@require_login
def elections_cancel(election_id: int):
    s = db_session()
    election = cancel_election(s, election_id, current_identity(), reason=json_body().get("reason"))
    s.commit()
    current_app.logger.info("Election %s cancelled via API", election.id)
    return jsonify({"ok": True, "data": election_to_dict(election)})


@bp.get("/<int:election_id>/results")
def elections_results(election_id: int):
    from app.civic.modules.voting.tabulation import get_results

    s = db_session()
    return jsonify({"ok": True, "data": get_results(s, election_id).to_dict()})
