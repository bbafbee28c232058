import logging

from dotenv import load_dotenv
from flask import Flask, g, request
from flask_cors import CORS

from app.feedback.config import load_config
from app.feedback.db import init_db, teardown_db_session
from app.feedback.errors import register_error_handlers
from app.feedback.routes import bp as routes_bp
from app.feedback.auth import bp as auth_bp, load_current_principal
from app.feedback.modules.accounts.routes import bp as accounts_bp
from app.feedback.modules.courses.routes import bp as courses_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if str(app.config.get("JWT_SECRET") or "") in ("", "change-me"):
            raise RuntimeError("JWT_SECRET (or SECRET_KEY) must be set to a strong value in production (not default).")

    CORS(
        app,
        origins=[app.config["CLIENT_ORIGIN"]],
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/user")
    app.register_blueprint(accounts_bp, url_prefix="/users")
    app.register_blueprint(courses_bp, url_prefix="/outlet")

    def _load_principal_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.principal = None
            return None
        return load_current_principal()

    app.before_request(_load_principal_wrapper)
    app.teardown_appcontext(teardown_db_session)
    register_error_handlers(app)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
