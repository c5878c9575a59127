"""Flask application factory for the stolen tool index service."""
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from extensions import csrf, db, login_manager, migrate
from utils.access_policy import AccessPolicy
from utils.errors import ToolIndexError
from utils.logger import init_logging
from utils.object_storage import LocalObjectStorage
from utils.security import apply_security_headers
from utils.tool_reports import ToolReportManager


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ToolIndexError)
    def tool_index_error(error: ToolIndexError):
        extra = {"path": request.path, "method": request.method, "error_type": type(error).__name__}
        if error.status_code >= 500:
            app.logger.error("Request failed: %s", error, extra=extra, exc_info=error)
        else:
            app.logger.warning("Request rejected: %s", error, extra=extra)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(CSRFError)
    def csrf_error(error):
        app.logger.warning("CSRF validation failed", extra={"path": request.path, "method": request.method})
        return jsonify({"error": error.description}), 400

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        if error.code and error.code >= 500:
            app.logger.error("%s %s", error.code, error.name, extra={"path": request.path})
        else:
            app.logger.warning("%s %s", error.code, error.name, extra={"path": request.path, "method": request.method})
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # In-memory databases have no file to prepare.
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # Startup fails loudly later on the first real connection.
            pass
        finally:
            engine.dispose()


def init_services(app: Flask) -> None:
    """Build the storage backend and report services once per app."""
    storage = LocalObjectStorage(
        app.config["OBJECT_STORAGE_ROOT"],
        base_url=app.config.get("PUBLIC_MEDIA_BASE_URL", "/media"),
    )
    app.extensions["object_storage"] = storage
    app.extensions["tool_reports"] = ToolReportManager(
        db.session,
        storage,
        bucket=app.config.get("OBJECT_STORAGE_BUCKET", "tools"),
        max_image_bytes=int(app.config["MAX_IMAGE_UPLOAD_BYTES"]),
        logger=app.logger,
    )
    app.extensions["access_policy"] = AccessPolicy(db.session)


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    # Optional instance-specific overrides
    app.config.from_pyfile("config.py", silent=True)
    os.makedirs(app.instance_path, exist_ok=True)

    logger = init_logging(app)
    app.logger = logger

    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    @login_manager.user_loader
    def load_user(user_id):
        from models import User  # Local import to avoid circular dependency

        if not user_id:
            return None
        return db.session.get(User, str(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Sign in to continue"}), 401

    init_services(app)

    from routes import admin_bp, auth_bp, main_bp, tools_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(tools_bp)
    app.register_blueprint(admin_bp)

    register_error_handlers(app)

    @app.after_request
    def set_security_headers(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    with app.app_context():
        db.create_all()

    app.logger.info("Application started", extra={"config": config_class.__name__})
    return app
