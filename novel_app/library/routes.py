from __future__ import annotations

from flask import jsonify, request

from ..extensions import db
from ..models import Story
from . import bp


def _requesting_user_id() -> int | None:
    payload = request.get_json(silent=True) or {}
    raw = payload.get("user_id", request.args.get("user_id"))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@bp.route("/users/<int:user_id>/stories", methods=["GET"])
def list_user_stories(user_id: int):
    stories = (
        Story.query.filter_by(user_id=user_id)
        .order_by(Story.updated_at.desc())
        .all()
    )
    return jsonify({"stories": [story.to_dict() for story in stories]})


@bp.route("/stories/public", methods=["GET"])
def list_public_stories():
    stories = (
        Story.query.filter_by(is_public=True)
        .order_by(Story.updated_at.desc())
        .all()
    )
    return jsonify({"stories": [story.to_dict() for story in stories]})


@bp.route("/stories/<int:story_id>", methods=["GET"])
def story_detail(story_id: int):
    story = db.session.get(Story, story_id)
    if story is None or (not story.is_public and story.user_id != _requesting_user_id()):
        return jsonify({"error": "We couldn't find that story."}), 404
    return jsonify({"story": story.to_dict(include_contents=True)})


@bp.route("/stories/<int:story_id>/visibility", methods=["POST"])
def toggle_visibility(story_id: int):
    story = Story.query.filter_by(id=story_id, user_id=_requesting_user_id()).first()
    if story is None:
        return jsonify({"error": "We couldn't find that story."}), 404

    payload = request.get_json(silent=True) or {}
    requested = payload.get("is_public")
    story.is_public = (not story.is_public) if requested is None else bool(requested)
    db.session.commit()
    return jsonify({"story_id": story.id, "is_public": story.is_public})


@bp.route("/stories/<int:story_id>", methods=["DELETE"])
def delete_story(story_id: int):
    story = Story.query.filter_by(id=story_id, user_id=_requesting_user_id()).first()
    if story is None:
        return jsonify({"error": "We couldn't find that story."}), 404
    db.session.delete(story)
    db.session.commit()
    return jsonify({"deleted": story_id})
