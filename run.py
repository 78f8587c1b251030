#!/usr/bin/env python3
"""Entry point for the debate tab development server."""
import logging
import os
from debatetab.app import create_app

logger = logging.getLogger('debatetab.run')

config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)

# Seed a demo tournament on first run
if app.config.get('SEED_DEMO_DATA'):
    with app.app_context():
        from debatetab.seeder import seed_demo_tournament
        count = seed_demo_tournament()
        if count:
            logger.info('Seeded %s demo teams', count)

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    logger.info('Debate tab starting on http://localhost:%s', port)
    app.run(host='0.0.0.0', port=port, debug=(config_name == 'development'))
