from flask import jsonify

from ..extensions import db
from ..models import User
from ..services.wallet import get_balance
from . import bp


@bp.route("/")
def index():
    return jsonify({"service": "novel_app", "status": "ok"})


@bp.route("/api/users/<int:user_id>/wallet")
def wallet(user_id: int):
    if db.session.get(User, user_id) is None:
        return jsonify({"error": "We couldn't find that user."}), 404
    return jsonify({"user_id": user_id, "balance": get_balance(user_id)})


@bp.app_errorhandler(404)
def not_found(_error):
    return jsonify({"error": "Not found."}), 404


@bp.app_errorhandler(405)
def method_not_allowed(_error):
    return jsonify({"error": "Method not allowed."}), 405
