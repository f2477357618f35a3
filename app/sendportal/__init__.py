import logging
import os
from datetime import timedelta

from flask import Flask, g, render_template, request, session
from dotenv import load_dotenv

from app.sendportal.config import load_config
from app.sendportal.db import init_db, teardown_db_session
from app.sendportal.forms import consume_form_state
from app.sendportal.routes import bp as routes_bp
from app.sendportal.auth import bp as auth_bp, load_current_user
from app.sendportal.portal import bp as portal_bp
from app.sendportal.security import ensure_csrf_token, validate_csrf

_UNTRACKED_PREFIXES = ("/static/", "/health", "/healthz")


def _check_production_settings(app: Flask) -> None:
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
        raise RuntimeError("DATABASE_URL is required in production.")
    if str(app.config["DATABASE_URL"]).startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config["LOG_LEVEL"])

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_form_state() -> dict:
        return consume_form_state()

    @app.context_processor
    def _inject_team() -> dict:
        from app.sendportal.tenancy import current_team

        user = getattr(g, "current_user", None)
        return {"current_user": user, "current_team": current_team() if user else None}

    # Load the user first so the CSRF guard can tell guests from sessions that can mutate.
    app.before_request(load_current_user)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNTRACKED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED", True):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Allow safe auth endpoints to pass through (login/logout)
            if (request.endpoint or "").startswith("auth."):
                return None
            # Guests are sent to login by the view guard; they cannot mutate anything.
            if getattr(g, "current_user", None) is None:
                return None
            if not validate_csrf(request):
                app.logger.warning("CSRF rejected: %s %s", request.method, request.path)
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    _check_production_settings(app)

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
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(portal_bp)

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        reason = getattr(g, "forbidden_reason", None)
        if reason:
            app.logger.warning("Forbidden: %s request_id=%s", reason, getattr(g, "request_id", None))
        return render_template("errors/403.html", reason=reason), 403

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
