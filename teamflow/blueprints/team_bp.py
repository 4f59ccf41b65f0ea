"""
Team & membership blueprint.

Routes:
  POST   /teams                                   – create team (caller becomes owner)
  GET    /teams                                   – teams the caller belongs to
  GET    /teams/<tid>                             – team detail + caller's role
  PATCH  /teams/<tid>                             – rename / re-describe
  DELETE /teams/<tid>                             – delete team (owner only)
  GET    /teams/<tid>/members                     – roster
  PATCH  /teams/<tid>/members/<uid>               – change role
  DELETE /teams/<tid>/members/<uid>               – remove member (or leave)
  POST   /teams/<tid>/transfer-ownership          – hand ownership to a member
  GET    /teams/<tid>/invitations                 – invitations (?status=)
  POST   /teams/<tid>/invitations                 – invite by email
  POST   /invitations/<iid>/accept                – caller accepts
  POST   /invitations/<iid>/revoke                – revoke a pending invitation
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from teamflow import limiter
from teamflow.auth import current_actor_id
from teamflow.blueprints import json_body, missing_fields
from teamflow.services import team_service

logger = logging.getLogger(__name__)

team_bp = Blueprint("team_bp", __name__, url_prefix="/api/v1")


def _invite_limit() -> str:
    return current_app.config.get("INVITE_RATE_LIMIT", "30 per minute")


# ═════════════════════════════════════════════════════════════════════════════
# TEAMS
# ═════════════════════════════════════════════════════════════════════════════

@team_bp.route("/teams", methods=["POST"])
def create_team():
    """Create a team.  Body: { name, description?, owner_email? }"""
    data = json_body()
    err = missing_fields(data, "name")
    if err:
        return err
    team = team_service.create_team(
        current_actor_id(),
        data["name"],
        description=data.get("description"),
        owner_email=data.get("owner_email"),
    )
    return jsonify(team.to_dict()), 201


@team_bp.route("/teams", methods=["GET"])
def list_teams():
    return jsonify(team_service.list_teams_for_user(current_actor_id()))


@team_bp.route("/teams/<team_id>", methods=["GET"])
def get_team(team_id):
    actor_id = current_actor_id()
    team = team_service.get_team(actor_id, team_id)
    d = team.to_dict()
    d["member_role"] = team_service.get_member_role(team_id, actor_id)
    return jsonify(d)


@team_bp.route("/teams/<team_id>", methods=["PATCH"])
def update_team(team_id):
    """Body: { name?, description? }"""
    data = json_body()
    team = team_service.update_team(
        current_actor_id(), team_id,
        name=data.get("name"),
        description=data.get("description"),
    )
    return jsonify(team.to_dict())


@team_bp.route("/teams/<team_id>", methods=["DELETE"])
def delete_team(team_id):
    team_service.delete_team(current_actor_id(), team_id)
    return jsonify({"deleted": True})


# ═════════════════════════════════════════════════════════════════════════════
# MEMBERS
# ═════════════════════════════════════════════════════════════════════════════

@team_bp.route("/teams/<team_id>/members", methods=["GET"])
def list_members(team_id):
    members = team_service.list_members(current_actor_id(), team_id)
    return jsonify([m.to_dict() for m in members])


@team_bp.route("/teams/<team_id>/members/<user_id>", methods=["PATCH"])
def update_member_role(team_id, user_id):
    """Body: { role }"""
    data = json_body()
    err = missing_fields(data, "role")
    if err:
        return err
    membership = team_service.update_member_role(current_actor_id(), team_id, user_id, data["role"])
    return jsonify(membership.to_dict())


@team_bp.route("/teams/<team_id>/members/<user_id>", methods=["DELETE"])
def remove_member(team_id, user_id):
    team_service.remove_member(current_actor_id(), team_id, user_id)
    return jsonify({"deleted": True})


@team_bp.route("/teams/<team_id>/transfer-ownership", methods=["POST"])
def transfer_ownership(team_id):
    """Body: { user_id }"""
    data = json_body()
    err = missing_fields(data, "user_id")
    if err:
        return err
    membership = team_service.transfer_ownership(current_actor_id(), team_id, data["user_id"])
    return jsonify(membership.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# INVITATIONS
# ═════════════════════════════════════════════════════════════════════════════

@team_bp.route("/teams/<team_id>/invitations", methods=["GET"])
def list_invitations(team_id):
    invitations = team_service.list_invitations(
        current_actor_id(), team_id, status=request.args.get("status") or None,
    )
    return jsonify([i.to_dict() for i in invitations])


@team_bp.route("/teams/<team_id>/invitations", methods=["POST"])
@limiter.limit(_invite_limit)
def invite_member(team_id):
    """Body: { email, role }"""
    data = json_body()
    err = missing_fields(data, "email", "role")
    if err:
        return err
    invitation = team_service.invite_member(current_actor_id(), team_id, data["email"], data["role"])
    return jsonify(invitation.to_dict()), 201


@team_bp.route("/invitations/<invitation_id>/accept", methods=["POST"])
def accept_invitation(invitation_id):
    membership = team_service.accept_invitation(invitation_id, current_actor_id())
    return jsonify(membership.to_dict()), 201


@team_bp.route("/invitations/<invitation_id>/revoke", methods=["POST"])
def revoke_invitation(invitation_id):
    invitation = team_service.revoke_invitation(current_actor_id(), invitation_id)
    return jsonify(invitation.to_dict())
