from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.civic.db import db_session
from app.civic.errors import NotFoundError, ValidationError
from app.civic.rbac import current_identity, ensure_permission, require_login
from app.civic.utils import iso_utc, json_body

from .eligibility import check_eligibility, has_voted
from .models import Vote
from .service import (
    cast_vote,
    count_candidate_votes,
    count_election_votes,
    get_vote_receipt,
    get_voting_statistics,
    invalidate_vote,
    list_election_votes,
    verify_vote_hash,
    verify_vote_integrity,
)

bp = Blueprint("voting", __name__)


def _int_field(payload: dict, name: str) -> int:
    try:
        return int(payload.get(name))
    except (TypeError, ValueError):
        raise ValidationError(f"{name} is required.") from None


def vote_audit_dict(v: Vote) -> dict:
    return {
        "id": v.id,
        "election_id": v.election_id,
        "voter_id": v.voter_id,
        "candidate_id": v.candidate_id,
        "vote_hash": v.vote_hash,
        "ip_address": v.ip_address,
        "is_valid": v.is_valid,
        "created_at": iso_utc(v.created_at),
        "invalidated_at": iso_utc(v.invalidated_at),
        "invalidated_by_user_id": v.invalidated_by_user_id,
        "invalidation_reason": v.invalidation_reason,
    }


@bp.post("/vote")
@require_login
def voting_cast():
    payload = json_body()
    election_id = _int_field(payload, "election_id")
    candidate_id = _int_field(payload, "candidate_id")
    voter_id = _int_field(payload, "voter_id") if payload.get("voter_id") is not None else None
    s = db_session()
    receipt = cast_vote(
        s,
        election_id,
        candidate_id,
        current_identity(),
        voter_id=voter_id,
        ip_address=request.remote_addr,
    )
    s.commit()
    return jsonify({"ok": True, "data": receipt.to_dict()}), 201


@bp.get("/election/<int:election_id>/voted")
@require_login
def voting_has_voted(election_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": {"has_voted": has_voted(s, g.current_user.id, election_id)}})


@bp.get("/election/<int:election_id>/receipt")
@require_login
def voting_receipt(election_id: int):
    s = db_session()
    receipt = get_vote_receipt(s, g.current_user.id, election_id)
    if receipt is None:
        raise NotFoundError("No vote found for this election.")
    return jsonify({"ok": True, "data": receipt.to_dict()})


@bp.get("/election/<int:election_id>/eligibility")
@require_login
def voting_eligibility(election_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": check_eligibility(s, g.current_user.id, election_id).to_dict()})


@bp.get("/election/<int:election_id>/statistics")
def voting_statistics(election_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": get_voting_statistics(s, election_id).to_dict()})


@bp.get("/election/<int:election_id>/count")
def voting_election_count(election_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": {"election_id": election_id, "vote_count": count_election_votes(s, election_id)}})


@bp.get("/candidate/<int:candidate_id>/count")
def voting_candidate_count(candidate_id: int):
    s = db_session()
    return jsonify({"ok": True, "data": {"candidate_id": candidate_id, "vote_count": count_candidate_votes(s, candidate_id)}})


@bp.get("/election/<int:election_id>/votes")
@require_login
def voting_election_votes(election_id: int):
    s = db_session()
    rows = list_election_votes(s, election_id, current_identity())
    return jsonify({"ok": True, "data": [vote_audit_dict(v) for v in rows]})


@bp.post("/verify")
def voting_verify():
    payload = json_body()
    vote_id = _int_field(payload, "vote_id")
    vote_hash = str(payload.get("vote_hash") or "")
    s = db_session()
    return jsonify({"ok": True, "data": {"vote_id": vote_id, "valid": verify_vote_hash(s, vote_id, vote_hash)}})


@bp.post("/vote/<int:vote_id>/invalidate")
@require_login
def voting_invalidate(vote_id: int):
    s = db_session()
    vote = invalidate_vote(s, vote_id, json_body().get("reason"), current_identity())
    s.commit()
    return jsonify({"ok": True, "data": vote_audit_dict(vote)})


@bp.get("/vote/<int:vote_id>/integrity")
@require_login
def voting_integrity(vote_id: int):
    s = db_session()
    ensure_permission(current_identity(), "vote.audit")
    return jsonify({"ok": True, "data": verify_vote_integrity(s, vote_id)})
