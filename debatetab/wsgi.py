"""WSGI entrypoint used by Gunicorn."""
import logging
import os

from debatetab.app import create_app
from debatetab.config import _env_bool
from debatetab.seeder import seed_demo_tournament

logger = logging.getLogger(__name__)

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

if _env_bool('SEED_DEMO_DATA', False):
    with app.app_context():
        seeded = seed_demo_tournament()
        if seeded:
            logger.info('Seeded %s demo teams', seeded)
