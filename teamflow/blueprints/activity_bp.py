"""
Activity log blueprint (read-only).

Routes:
  GET /teams/<tid>/activity                          – newest first (?limit=, ?cursor=, ?entity_type=)
  GET /teams/<tid>/activity/<entity_type>/<eid>      – one entity's history, oldest first
"""

from flask import Blueprint, jsonify, request

from teamflow.auth import current_actor_id
from teamflow.services import activity_service

activity_bp = Blueprint("activity_bp", __name__, url_prefix="/api/v1")


@activity_bp.route("/teams/<team_id>/activity", methods=["GET"])
def list_activity(team_id):
    page = activity_service.list_activity(
        current_actor_id(), team_id,
        limit=request.args.get("limit"),
        cursor=request.args.get("cursor") or None,
        entity_type=request.args.get("entity_type") or None,
    )
    return jsonify(page.to_dict())


@activity_bp.route("/teams/<team_id>/activity/<entity_type>/<entity_id>", methods=["GET"])
def entity_history(team_id, entity_type, entity_id):
    records = activity_service.list_entity_activity(current_actor_id(), team_id, entity_type, entity_id)
    return jsonify([r.to_dict() for r in records])
