import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_optional_int(name):
    raw = os.environ.get(name)
    if raw is None or not str(raw).strip():
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _normalize_database_url(raw_url):
    if not raw_url:
        return raw_url
    if raw_url.startswith('postgres://'):
        return raw_url.replace('postgres://', 'postgresql://', 1)
    return raw_url


class BaseConfig:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-prod')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_EXPIRATION_HOURS = 24
    ADMIN_EMAILS = os.environ.get('ADMIN_EMAILS', '')
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Tournament shape
    PRELIM_ROUNDS = _env_int('PRELIM_ROUNDS', 3)
    BREAK_SIZE = _env_int('BREAK_SIZE', 16)  # 16 or 8
    BREAK_SCORING_MODE = os.environ.get('BREAK_SCORING_MODE', 'INDIVIDUAL')
    PAIRING_POLICY = os.environ.get('PAIRING_POLICY', 'seeded')
    DRAW_SEED = _env_optional_int('DRAW_SEED')

    # Ballot bounds, inclusive
    TEAM_SCORE_MIN = _env_int('TEAM_SCORE_MIN', 0)
    TEAM_SCORE_MAX = _env_int('TEAM_SCORE_MAX', 100)
    INDIVIDUAL_SCORE_MIN = _env_int('INDIVIDUAL_SCORE_MIN', 0)
    INDIVIDUAL_SCORE_MAX = _env_int('INDIVIDUAL_SCORE_MAX', 100)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.environ.get(
            'DATABASE_URL',
            'sqlite:///' + os.path.join(basedir, '..', 'debatetab_dev.db')
        )
    )
    SEED_DEMO_DATA = _env_bool('SEED_DEMO_DATA', True)


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    LOG_LEVEL = 'WARNING'
    PRELIM_ROUNDS = 3
    BREAK_SIZE = 16
    BREAK_SCORING_MODE = 'INDIVIDUAL'
    DRAW_SEED = 7


class ProductionConfig(BaseConfig):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get('DATABASE_URL'))


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
