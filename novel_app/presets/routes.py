from __future__ import annotations

from flask import abort, jsonify

from ..extensions import db
from ..models import Character, Scenario, User
from . import bp
from .forms import CharacterForm, ScenarioForm


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        abort(404)
    return user


def _form_errors(form) -> dict:
    messages = [f"{field}: {error}" for field, errors in form.errors.items() for error in errors]
    return {"error": "; ".join(messages) or "Invalid submission.", "fields": form.errors}


@bp.route("/characters", methods=["GET"])
def list_characters(user_id: int):
    user = _get_user_or_404(user_id)
    return jsonify({"characters": [character.to_dict() for character in user.characters]})


@bp.route("/characters", methods=["POST"])
def create_character(user_id: int):
    user = _get_user_or_404(user_id)
    form = CharacterForm()
    if not form.validate_on_submit():
        return jsonify(_form_errors(form)), 400

    character = Character(
        owner=user,
        name=form.name.data.strip(),
        description=(form.description.data or "").strip() or None,
        personality_tags=form.personality_tags.data or [],
        dialogue_style=(form.dialogue_style.data or "").strip() or None,
    )
    db.session.add(character)
    db.session.commit()
    return jsonify({"character": character.to_dict()}), 201


@bp.route("/characters/<int:character_id>", methods=["DELETE"])
def delete_character(user_id: int, character_id: int):
    character = Character.query.filter_by(id=character_id, user_id=user_id).first()
    if character is None:
        return jsonify({"error": "We couldn't find that character."}), 404
    db.session.delete(character)
    db.session.commit()
    return jsonify({"deleted": character_id})


@bp.route("/scenarios", methods=["GET"])
def list_scenarios(user_id: int):
    user = _get_user_or_404(user_id)
    return jsonify({"scenarios": [scenario.to_dict() for scenario in user.scenarios]})


@bp.route("/scenarios", methods=["POST"])
def create_scenario(user_id: int):
    user = _get_user_or_404(user_id)
    form = ScenarioForm()
    if not form.validate_on_submit():
        return jsonify(_form_errors(form)), 400

    scenario = Scenario(
        owner=user,
        title=form.title.data.strip(),
        setting_text=form.setting_text.data.strip(),
    )
    db.session.add(scenario)
    db.session.commit()
    return jsonify({"scenario": scenario.to_dict()}), 201


@bp.route("/scenarios/<int:scenario_id>", methods=["DELETE"])
def delete_scenario(user_id: int, scenario_id: int):
    scenario = Scenario.query.filter_by(id=scenario_id, user_id=user_id).first()
    if scenario is None:
        return jsonify({"error": "We couldn't find that scenario."}), 404
    db.session.delete(scenario)
    db.session.commit()
    return jsonify({"deleted": scenario_id})
