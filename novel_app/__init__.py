from __future__ import annotations

import os
from pathlib import Path

from flask import Flask
from dotenv import load_dotenv

from .config import Config
from .extensions import csrf, db, migrate
from .db_utils import ensure_database_schema


BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    app.config.setdefault(
        "PROMPT_CONFIG_PATH",
        os.environ.get("PROMPT_CONFIG_PATH", str(BASE_DIR / "prompt_config.json")),
    )

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    register_extensions(app)
    register_blueprints(app)

    with app.app_context():
        ensure_database_schema()

    return app


def register_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)


def register_blueprints(app: Flask) -> None:
    from .api import bp as api_bp
    from .library import bp as library_bp
    from .main import bp as main_bp
    from .presets import bp as presets_bp

    # The JSON API is called by non-browser clients that carry no CSRF token.
    for blueprint in (api_bp, library_bp, presets_bp):
        csrf.exempt(blueprint)

    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(library_bp)
    app.register_blueprint(presets_bp)
