"""
Team comment blueprint.

Routes:
  GET  /teams/<tid>/comments     – top-level comments with replies (?post_id=)
  POST /teams/<tid>/comments     – comment on a post, or reply via parent_id
"""

from flask import Blueprint, jsonify, request

from teamflow.auth import current_actor_id
from teamflow.blueprints import json_body, missing_fields
from teamflow.services import comment_service

comment_bp = Blueprint("comment_bp", __name__, url_prefix="/api/v1")


@comment_bp.route("/teams/<team_id>/comments", methods=["GET"])
def list_comments(team_id):
    comments = comment_service.list_comments(
        current_actor_id(), team_id, post_id=request.args.get("post_id") or None,
    )
    return jsonify([c.to_dict(include_replies=True) for c in comments])


@comment_bp.route("/teams/<team_id>/comments", methods=["POST"])
def create_comment(team_id):
    """Body: { post_id, content, parent_id? }"""
    data = json_body()
    err = missing_fields(data, "post_id", "content")
    if err:
        return err
    comment = comment_service.create_comment(
        current_actor_id(), team_id,
        data["post_id"],
        data["content"],
        parent_id=data.get("parent_id"),
    )
    return jsonify(comment.to_dict()), 201
