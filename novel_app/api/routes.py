from __future__ import annotations

from flask import current_app, jsonify, request

from ..extensions import db
from ..services.episodes import generate_episode, parse_generation_request
from ..services.errors import EpisodeGenerationError
from . import bp


@bp.route("/episodes", methods=["POST"])
def generate():
    return _run_generation(retrieval=False)


@bp.route("/episodes/rlm", methods=["POST"])
def generate_with_retrieval():
    return _run_generation(retrieval=True)


def _run_generation(*, retrieval: bool):
    payload = request.get_json(silent=True) or {}

    try:
        generation_request = parse_generation_request(payload)
        result = generate_episode(generation_request, retrieval=retrieval)
    except EpisodeGenerationError as exc:
        current_app.logger.info("Episode generation rejected: %s", exc)
        return jsonify({"error": str(exc)}), exc.status_code
    except Exception:  # pragma: no cover - defensive logging for unexpected states
        db.session.rollback()
        current_app.logger.exception("Unexpected error while generating an episode")
        return jsonify({"error": "We couldn't generate an episode right now. Please try again."}), 500

    return jsonify(result.to_dict())
