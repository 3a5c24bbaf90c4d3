from flask import Blueprint

bp = Blueprint("presets", __name__, url_prefix="/api/users/<int:user_id>")

from . import routes  # noqa: E402,F401
