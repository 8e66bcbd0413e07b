import logging
import os

from dotenv import load_dotenv
from flask import Flask, g
from werkzeug.exceptions import HTTPException

from app.tutoria.auth import load_current_principal
from app.tutoria.config import load_config
from app.tutoria.db import init_db, teardown_db_session
from app.tutoria.errors import AccessError
from app.tutoria.routes import bp as routes_bp
from app.tutoria.modules.catalog.admin import bp as catalog_bp
from app.tutoria.modules.access_tokens.admin import bp as access_tokens_bp
from app.tutoria.modules.professor_agents.admin import bp as professor_agents_bp
from app.tutoria.modules.widget.admin import bp as widget_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = app.config.get("JSON_SORT_KEYS", False)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(access_tokens_bp)
    app.register_blueprint(professor_agents_bp)
    app.register_blueprint(widget_bp)

    app.before_request(load_current_principal)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(AccessError)
    def _err_access(e: AccessError):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        if e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_policy=%s request_id=%s",
                e.code,
                getattr(g, "missing_policy", None),
                rid,
            )
        elif e.status_code == 401:
            app.logger.info("Unauthorized: %s request_id=%s", e.code, rid)
        return e.to_dict(), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        code = (e.name or "error").lower().replace(" ", "_")
        return {"error": code, "message": e.description}, e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return {"error": "internal_error", "message": "An unexpected error occurred."}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
