import logging

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from debatetab.config import config

db = SQLAlchemy()

logger = logging.getLogger(__name__)


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _configure_logging(app):
    level_name = str(app.config.get('LOG_LEVEL') or 'INFO').strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    logging.getLogger('debatetab').setLevel(level)


def _validate_production_config(app, allowed_origins):
    secret_key = str(app.config.get('SECRET_KEY') or '').strip()
    if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
        raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
    if allowed_origins == '*':
        raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        raise RuntimeError('DATABASE_URL must be set in production')


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    _configure_logging(app)

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        _validate_production_config(app, allowed_origins)
    if app.config.get('BREAK_SIZE') not in (8, 16):
        raise RuntimeError('BREAK_SIZE must be 8 or 16')

    db.init_app(app)
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}})

    from debatetab.routes.auth import auth_bp
    from debatetab.routes.registry import registry_bp
    from debatetab.routes.rounds import rounds_bp
    from debatetab.routes.scores import scores_bp
    from debatetab.routes.bracket import bracket_bp
    from debatetab.routes.dashboard import dashboard_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(registry_bp, url_prefix='/api')
    app.register_blueprint(rounds_bp, url_prefix='/api/rounds')
    app.register_blueprint(scores_bp, url_prefix='/api/scores')
    app.register_blueprint(bracket_bp, url_prefix='/api')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    with app.app_context():
        from debatetab import models  # noqa: F401
        db.create_all()

    logger.info(
        'App created (config=%s, prelim_rounds=%s, break_size=%s)',
        config_name, app.config.get('PRELIM_ROUNDS'), app.config.get('BREAK_SIZE'),
    )
    return app
