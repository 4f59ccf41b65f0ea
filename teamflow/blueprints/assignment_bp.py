"""
Assignment blueprint.

Routes:
  GET    /teams/<tid>/assignments            – list (?status=, ?assignee_id=)
  POST   /teams/<tid>/assignments            – assign a post to a member
  GET    /teams/<tid>/assignments/mine       – the caller's assignments
  GET    /teams/<tid>/assignments/overdue    – unfinished, past due
  POST   /assignments/<aid>/status           – move along the lifecycle
"""

from flask import Blueprint, jsonify, request

from teamflow.auth import current_actor_id
from teamflow.blueprints import json_body, missing_fields
from teamflow.services import assignment_service
from teamflow.utils.helpers import utcnow

assignment_bp = Blueprint("assignment_bp", __name__, url_prefix="/api/v1")


@assignment_bp.route("/teams/<team_id>/assignments", methods=["GET"])
def list_assignments(team_id):
    now = utcnow()
    items = assignment_service.list_assignments(
        current_actor_id(), team_id,
        assignee_id=request.args.get("assignee_id") or None,
        status=request.args.get("status") or None,
        now=now,
    )
    return jsonify([a.to_dict(now=now) for a in items])


@assignment_bp.route("/teams/<team_id>/assignments", methods=["POST"])
def create_assignment(team_id):
    """Body: { post_id, assignee_id, due_date?, notes? }"""
    data = json_body()
    err = missing_fields(data, "post_id", "assignee_id")
    if err:
        return err
    assignment = assignment_service.create_assignment(
        current_actor_id(), team_id,
        data["post_id"],
        data["assignee_id"],
        due_date=data.get("due_date"),
        notes=data.get("notes"),
    )
    return jsonify(assignment.to_dict()), 201


@assignment_bp.route("/teams/<team_id>/assignments/mine", methods=["GET"])
def my_assignments(team_id):
    actor_id = current_actor_id()
    items = assignment_service.assignments_for_user(actor_id, team_id, actor_id)
    return jsonify([a.to_dict() for a in items])


@assignment_bp.route("/teams/<team_id>/assignments/overdue", methods=["GET"])
def overdue_assignments(team_id):
    now = utcnow()
    items = assignment_service.overdue_assignments(current_actor_id(), team_id, now=now)
    return jsonify([a.to_dict(now=now) for a in items])


@assignment_bp.route("/assignments/<assignment_id>/status", methods=["POST"])
def update_assignment_status(assignment_id):
    """Body: { status }"""
    data = json_body()
    err = missing_fields(data, "status")
    if err:
        return err
    assignment = assignment_service.update_assignment_status(
        current_actor_id(), assignment_id, data["status"],
    )
    return jsonify(assignment.to_dict())
