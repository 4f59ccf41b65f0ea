"""
Approval blueprint.

Routes:
  GET    /teams/<tid>/approvals                       – list (?status=, ?post_id=)
  POST   /teams/<tid>/approvals                       – request approval for a post
  GET    /teams/<tid>/approvals/pending               – awaiting a decision
  GET    /teams/<tid>/posts/<pid>/approval-status     – publishability of a post
  POST   /approvals/<aid>/decide                      – approve / reject
"""

from flask import Blueprint, jsonify, request

from teamflow.auth import current_actor_id
from teamflow.blueprints import json_body, missing_fields
from teamflow.services import approval_service

approval_bp = Blueprint("approval_bp", __name__, url_prefix="/api/v1")


@approval_bp.route("/teams/<team_id>/approvals", methods=["GET"])
def list_approvals(team_id):
    items = approval_service.list_approvals(
        current_actor_id(), team_id,
        status=request.args.get("status") or None,
        post_id=request.args.get("post_id") or None,
    )
    return jsonify([a.to_dict() for a in items])


@approval_bp.route("/teams/<team_id>/approvals", methods=["POST"])
def request_approval(team_id):
    """Body: { post_id }"""
    data = json_body()
    err = missing_fields(data, "post_id")
    if err:
        return err
    approval = approval_service.request_approval(current_actor_id(), team_id, data["post_id"])
    return jsonify(approval.to_dict()), 201


@approval_bp.route("/teams/<team_id>/approvals/pending", methods=["GET"])
def pending_approvals(team_id):
    items = approval_service.pending_approvals(current_actor_id(), team_id)
    return jsonify([a.to_dict() for a in items])


@approval_bp.route("/teams/<team_id>/posts/<post_id>/approval-status", methods=["GET"])
def post_approval_status(team_id, post_id):
    return jsonify(approval_service.get_post_approval_status(current_actor_id(), team_id, post_id))


@approval_bp.route("/approvals/<approval_id>/decide", methods=["POST"])
def decide(approval_id):
    """Body: { decision: "approved"|"rejected", feedback? }"""
    data = json_body()
    err = missing_fields(data, "decision")
    if err:
        return err
    approval = approval_service.update_approval(
        current_actor_id(), approval_id, data["decision"], feedback=data.get("feedback"),
    )
    return jsonify(approval.to_dict())
