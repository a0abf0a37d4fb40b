"""medq_app package – application factory and blueprint registration."""

from __future__ import annotations

import os
from time import perf_counter

import click
from flask import Flask, g, jsonify, request
from flask_jwt_extended import JWTManager
from sqlalchemy import event

from config import resolve_config
from .blueprints import BLUEPRINTS
from .errors import fail
from .extensions import cors, db, jwt, limiter, migrate
from .logging_config import assign_request_id, configure_logging
from .metrics import record_request


def create_app(config_name: str | None = None) -> Flask:
    """Application factory used by both CLI and runtime servers."""

    app = Flask(__name__)
    _configure_app(app, config_name)
    configure_logging(app)
    _register_extensions(app)
    _register_blueprints(app)
    _register_shellcontext(app)
    _register_cli(app)
    _register_bootstrap(app)
    _register_request_hooks(app)

    return app


def _configure_app(app: Flask, config_name: str | None) -> None:
    env_name = config_name or os.getenv("FLASK_CONFIG")
    config_obj = resolve_config(env_name)
    app.config.from_object(config_obj)


def _register_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    _configure_jwt(jwt)
    _configure_sqlite_engine(app)
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=True,
    )
    limiter.default_limits = app.config.get("RATE_LIMIT_DEFAULTS", [])
    limiter.init_app(app)


def _register_blueprints(app: Flask) -> None:
    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)


def _register_shellcontext(app: Flask) -> None:
    # Lazy import inside function to avoid circular dependencies.
    from . import models

    @app.shell_context_processor
    def shell_context():
        return {
            "db": db,
            "StudyFile": models.StudyFile,
            "Section": models.Section,
            "Question": models.Question,
        }


def _configure_jwt(jwt_manager: JWTManager) -> None:
    @jwt_manager.expired_token_loader
    def expired_token_callback(jwt_header, jwt_data):
        return jsonify(fail("UNAUTHENTICATED", "Token has expired.")), 401

    @jwt_manager.invalid_token_loader
    def invalid_token_callback(error_string):
        return jsonify(fail("UNAUTHENTICATED", "Invalid token.")), 401

    @jwt_manager.unauthorized_loader
    def missing_token_callback(error_string):
        return jsonify(fail("UNAUTHENTICATED")), 401


def _register_bootstrap(app: Flask) -> None:
    @app.before_request
    def ensure_schema():
        if app.config.get("_SCHEMA_READY"):
            return
        try:
            db.create_all()
            app.config["_SCHEMA_READY"] = True
        except Exception as exc:  # pragma: no cover - defensive logging
            app.logger.debug("Schema bootstrap skipped: %s", exc)


def _register_request_hooks(app: Flask) -> None:
    @app.before_request
    def start_request():
        assign_request_id()
        g.request_started_at = perf_counter()

    @app.after_request
    def finalize(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id
        started = getattr(g, "request_started_at", None)
        latency = perf_counter() - started if started else 0.0
        endpoint = request.endpoint or request.path
        record_request(request.method, endpoint, response.status_code, latency)
        return response

    @app.errorhandler(429)
    def rate_limited(_error):
        return jsonify(fail("RATE_LIMITED")), 429

    @app.errorhandler(500)
    def internal_error(_error):
        return jsonify(fail("INTERNAL")), 500


def _configure_sqlite_engine(app: Flask) -> None:
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if not uri.startswith("sqlite") or ":memory:" in uri:
        return
    busy_timeout_ms = int(app.config.get("SQLITE_BUSY_TIMEOUT_MS", 15000))

    with app.app_context():
        engine = db.engine

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):  # pragma: no cover
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms};")
                cursor.execute("PRAGMA synchronous=NORMAL;")
            finally:
                cursor.close()


def _register_cli(app: Flask) -> None:
    @app.cli.group("pipeline")
    def pipeline_group():
        """Document pipeline maintenance commands."""

    @pipeline_group.command("reclaim-stuck")
    @click.option(
        "--older-than",
        "older_than",
        type=int,
        default=None,
        help="Minutes a section may sit in PENDING/PROCESSING before it is failed.",
    )
    def reclaim_stuck_command(older_than: int | None):
        """Fail sections stuck mid-pipeline and converge their files."""

        from .services import retry_service
        from .settings import get_settings

        with app.app_context():
            window = older_than if older_than is not None else get_settings().stuck_section_minutes
            result = retry_service.reclaim_stuck_sections(window)
        click.echo(f"Reclaimed {result['reclaimed']} section(s); {result['filesReady']} file(s) now ready.")

    @pipeline_group.command("retry")
    @click.option("--file-id", required=True, help="File whose failed sections should be re-queued.")
    @click.option("--owner-id", default=None, help="Owner uid; defaults to the file's owner.")
    def retry_command(file_id: str, owner_id: str | None):
        """Re-queue failed sections of a file."""

        from .errors import PipelineError
        from .models import StudyFile
        from .services import retry_service

        with app.app_context():
            if owner_id is None:
                study_file = db.session.get(StudyFile, file_id)
                if study_file is None:
                    raise click.ClickException(f"File {file_id} not found.")
                owner_id = study_file.owner_id
            try:
                result = retry_service.retry_failed_sections(owner_id, file_id)
            except PipelineError as exc:
                raise click.ClickException(exc.message) from exc
        click.echo(result["message"])
