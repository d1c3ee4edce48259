# contest_platform/__init__.py

import logging
import os
import time
from dataclasses import dataclass

from flask import Flask
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from werkzeug.middleware.proxy_fix import ProxyFix

# Extensions are created unbound and attached in create_app, so tests can build
# as many isolated apps as they like.
db = SQLAlchemy()  # Database ORM
migrate = Migrate()  # DB migrations
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'database', 'migrations')

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Per-app service container, stored in app.extensions['contest_platform']."""
    settings: object
    validator: object
    audit: object
    tokens: object
    credentials: object
    lifecycle: object
    ledger: object
    started_at: float


def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ships with foreign key enforcement off for every new connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )


def build_services(app, settings):
    from contest_platform.audit.audit_logger import AuditLogger
    from contest_platform.authentication.credentials import CredentialService
    from contest_platform.competitions.lifecycle import CompetitionLifecycleManager
    from contest_platform.database.repository import (
        CompetitionRepository,
        EntryRepository,
        IdentityRepository,
    )
    from contest_platform.encryption.password_hashing import PasswordHashingService
    from contest_platform.security.input_validator import InputValidator
    from contest_platform.security.token_manager import TokenManager
    from contest_platform.voting.vote_ledger import VoteLedger

    validator = InputValidator()
    audit = AuditLogger.from_settings(settings)
    tokens = TokenManager(app)
    credentials = CredentialService(
        IdentityRepository(), PasswordHashingService.from_settings(settings), tokens, validator, audit)
    lifecycle = CompetitionLifecycleManager(CompetitionRepository(), validator, audit)
    ledger = VoteLedger(EntryRepository(), lifecycle, validator, audit)
    return Services(
        settings=settings,
        validator=validator,
        audit=audit,
        tokens=tokens,
        credentials=credentials,
        lifecycle=lifecycle,
        ledger=ledger,
        started_at=time.monotonic(),
    )


def create_app(settings=None):
    """Application factory. Reads settings from the environment when none are given."""
    from contest_platform.config import Settings

    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    app.config.update(settings.to_flask_config())
    app.json.sort_keys = False

    # Fix proxy headers so the rate limiter sees the client address
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    # Ensure model modules are imported so SQLAlchemy metadata is populated
    # before Flask-Migrate / create_all look at it.
    from contest_platform.database import models  # noqa: F401

    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)
    jwt.init_app(app)
    limiter.init_app(app)

    if settings.database_url.startswith('sqlite'):
        with app.app_context():
            event.listen(db.engine, 'connect', enable_sqlite_foreign_keys)

    app.extensions['contest_platform'] = build_services(app, settings)

    from contest_platform.create_user import create_user_command
    from contest_platform.operations.health_monitor import health_bp
    from contest_platform.routes import api, register_error_handlers

    app.register_blueprint(api, url_prefix=settings.api_prefix or None)
    app.register_blueprint(health_bp, url_prefix=settings.api_prefix or None)
    register_error_handlers(app)
    app.cli.add_command(create_user_command)

    if settings.auto_create_schema:
        with app.app_context():
            db.create_all()

    logger.info("Contest platform ready (env=%s, prefix=%r)", settings.environment, settings.api_prefix or '/')
    return app
