"""Application entrypoint for the headless runner web service."""
from __future__ import annotations

from flask import Flask

from config import Config, load_config
from web.routes import bp as main_blueprint


def create_app(config: Config | None = None) -> Flask:
    config = config or load_config()
    app = Flask(__name__)
    app.config.update(
        GAMES_ROOT=config.games_root,
        REQUEST_SIZE_LIMIT=config.request_size_limit,
        RATE_LIMIT_REQUESTS=config.rate_limit_requests,
        RATE_LIMIT_WINDOW=config.rate_limit_window,
        API_KEYS=config.api_keys,
    )
    app.config["X_API_KEYS"] = set(config.api_keys)
    app.register_blueprint(main_blueprint)
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=8000, debug=False)
