from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

from projectport.realtime.feed import ChangeFeed

load_dotenv()

db_engine = None
SessionLocal = None
change_feed: Optional[ChangeFeed] = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal, change_feed
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['SITE_URL'] = os.getenv('SITE_URL', 'http://localhost:5173')
    app.config['FUNCTIONS_URL'] = os.getenv('FUNCTIONS_URL', '')
    app.config['FUNCTIONS_API_KEY'] = os.getenv('FUNCTIONS_API_KEY')
    app.config['SYSTEM_ADMIN_EMAIL'] = os.getenv('SYSTEM_ADMIN_EMAIL', 'admin@projectport.com')
    app.config['SYSTEM_JOB_API_KEY'] = os.getenv('SYSTEM_JOB_API_KEY')
    app.config['INVITATION_TTL_DAYS'] = int(os.getenv('INVITATION_TTL_DAYS', '7'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    # Realtime: committed writes on realtime tables are published to the feed and pushed to
    # subscribers once the request that produced them has finished.
    from .realtime.capture import install_change_capture
    change_feed = ChangeFeed()
    install_change_capture(SessionLocal, change_feed)
    app.extensions['change_feed'] = change_feed

    @app.after_request
    def dispatch_changes(response):
        change_feed.dispatch()
        return response

    jwt.init_app(app)

    from .routes.iam import iam_bp
    from .routes.shops import shops_bp
    from .routes.jobs import jobs_bp, tracking_bp
    from .routes.messages import messages_bp
    from .routes.tickets import tickets_bp
    from .routes.notifications import notifications_bp
    from .routes.functions import functions_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(shops_bp, url_prefix='/shops')
    app.register_blueprint(jobs_bp, url_prefix='/jobs')
    app.register_blueprint(tracking_bp, url_prefix='/track')
    app.register_blueprint(messages_bp, url_prefix='/messages')
    app.register_blueprint(tickets_bp, url_prefix='/tickets')
    app.register_blueprint(notifications_bp, url_prefix='/notifications')
    app.register_blueprint(functions_bp, url_prefix='/functions/v1')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # nothing a failed request left pending may ride along with the next commit
        _discard_pending(app)
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def _discard_pending(app):
    try:
        SessionLocal.rollback()
    except SQLAlchemyError:
        app.logger.exception('Rollback after failed request failed')


def get_db():
    return SessionLocal()


def get_feed() -> ChangeFeed:
    return change_feed
