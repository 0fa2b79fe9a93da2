from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.civic.db import db_session
from app.civic.errors import NotFoundError, ValidationError
from app.civic.rbac import current_identity, require_login
from app.civic.utils import iso_utc, json_body, parse_bool

from .models import Candidate
from .service import (
    deactivate_candidate,
    get_candidate,
    get_candidate_for_user,
    list_candidates,
    list_user_candidacies,
    reactivate_candidate,
    register_candidate,
    update_candidate,
    verify_candidate,
)

bp = Blueprint("candidates", __name__)


def candidate_to_dict(c: Candidate) -> dict:
    return {
        "id": c.id,
        "user_id": c.user_id,
        "election_id": c.election_id,
        "candidate_name": c.candidate_name,
        "party_affiliation": c.party_affiliation,
        "bio": c.bio,
        "platform": c.platform,
        "website": c.website,
        "is_active": c.is_active,
        "is_verified": c.is_verified,
        "verified_at": iso_utc(c.verified_at),
        "created_at": iso_utc(c.created_at),
        "updated_at": iso_utc(c.updated_at),
    }


@bp.post("/")
@require_login
def candidates_register():
    payload = json_body()
    try:
        election_id = int(payload.get("election_id"))
    except (TypeError, ValueError):
        raise ValidationError("election_id is required.") from None
    s = db_session()
    candidate = register_candidate(s, election_id, current_identity(), payload)
    s.commit()
    return jsonify({"ok": True, "data": candidate_to_dict(candidate)}), 201


@bp.get("/election/<int:election_id>")
def candidates_for_election(election_id: int):
    s = db_session()
    include_inactive = bool(parse_bool(request.args.get("include_inactive"), default=False))
    rows = list_candidates(s, election_id, include_inactive=include_inactive)
    return jsonify({"ok": True, "data": [candidate_to_dict(c) for c in rows]})


@bp.get("/<int:candidate_id>")
def candidates_get(candidate_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": candidate_to_dict(get_candidate(s, candidate_id))})


@bp.put("/<int:candidate_id>")
@require_login
def candidates_update(candidate_id: int):
    s = db_session()
    candidate = update_candidate(s, candidate_id, json_body(), current_identity())
    s.commit()
    return jsonify({"ok": True, "data": candidate_to_dict(candidate)})


@bp.post("/<int:candidate_id>/verify")
@require_login
def candidates_verify(candidate_id: int):
    s = db_session()
    candidate = verify_candidate(s, candidate_id, current_identity())
    s.commit()
    return jsonify({"ok": True, "data": candidate_to_dict(candidate)})


@bp.post("/<int:candidate_id>/deactivate")
@require_login
def candidates_deactivate(candidate_id: int):
    s = db_session()
    candidate = deactivate_candidate(s, candidate_id, current_identity(), reason=json_body().get("reason"))
    s.commit()
    return jsonify({"ok": True, "data": candidate_to_dict(candidate)})


@bp.post("/<int:candidate_id>/reactivate")
@require_login
def candidates_reactivate(candidate_id: int):
    s = db_session()
    candidate = reactivate_candidate(s, candidate_id, current_identity())
    s.commit()
    return jsonify({"ok": True, "data": candidate_to_dict(candidate)})


@bp.get("/user/<int:user_id>/election/<int:election_id>")
def candidates_for_user(user_id: int, election_id: int):
    s = db_session()
    candidate = get_candidate_for_user(s, user_id, election_id)
    if candidate is None:
        raise NotFoundError("User is not a candidate in this election.")
    return jsonify({"ok": True, "data": candidate_to_dict(candidate)})


@bp.get("/user/<int:user_id>/candidacies")
def candidates_user_candidacies(user_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": [candidate_to_dict(c) for c in list_user_candidacies(s, user_id)]})
