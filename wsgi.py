# Production entry point: gunicorn -c gunicorn.config.py
import gevent.monkey
gevent.monkey.patch_all()

from app import create_app  # noqa: E402
from logger import app_logger  # noqa: E402

app = create_app()
app_logger.info(f"WSGI app ready (env={app.config.get('FLASK_ENV')})")
