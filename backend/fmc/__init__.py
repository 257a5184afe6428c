from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

# config key -> (env default, cast)
CONFIG_DEFAULTS = {
    'JWT_SECRET_KEY': ('dev-secret-change-me-0123456789abcdef', str),
    'DATABASE_URL': ('sqlite:///dev.db', str),
    'APPROVAL_CODE_TTL_MINUTES': ('10', int),
    'INVITE_CODE_TTL_DAYS': ('7', int),
    'REQUEST_NUMBER_PREFIX': ('REQ', str),
}


def _make_engine(db_url: str):
    if db_url.endswith(':memory:'):
        # one shared connection, otherwise every session sees its own empty database
        return create_engine(
            db_url,
            future=True,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
    return create_engine(db_url, future=True)


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    for key, (default, cast) in CONFIG_DEFAULTS.items():
        app.config[key] = cast(os.getenv(key, default))
    if config:
        app.config.update(config)

    db_engine = _make_engine(app.config['DATABASE_URL'])
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    # Swappable collaborators: tests pass CLOCK / NOTIFIER in the config mapping
    from .services import CLOCK_KEY, NOTIFIER_KEY
    from .services.notifications import LoggingNotificationDispatcher
    from .utils.clock import SystemClock
    app.extensions[CLOCK_KEY] = app.config.get('CLOCK') or SystemClock()
    app.extensions[NOTIFIER_KEY] = app.config.get('NOTIFIER') or LoggingNotificationDispatcher()

    from .routes.requests import req_bp  # request lifecycle
    from .routes.approvals import otp_bp  # completion approval codes
    from .routes.invites import inv_bp  # invite provisioning
    from .routes.profiles import prof_bp  # profile completion
    app.register_blueprint(req_bp, url_prefix='/requests')
    app.register_blueprint(otp_bp, url_prefix='/requests')
    app.register_blueprint(inv_bp, url_prefix='/invites')
    app.register_blueprint(prof_bp, url_prefix='/profiles')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    _register_error_handlers(app)
    return app


def _register_error_handlers(app: Flask):
    from .errors import ServiceError, NotFoundError

    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, ServiceError):
            # role denials are logged where they are raised (services.policy.deny)
            if isinstance(e, NotFoundError):
                app.logger.warning('Policy violation: %s', e.detail)
            return e.to_payload(), e.status
        if isinstance(e, HTTPException):
            return {'error': {'status': e.code, 'title': e.name, 'detail': e.description}}, e.code
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500


def get_db():
    return SessionLocal()
