# gunicorn -c gunicorn.config.py
import os

wsgi_app = "wsgi:app"

worker_class = "gevent"
workers = int(os.getenv("WEB_CONCURRENCY", "4"))
worker_connections = 1000
timeout = 120
graceful_timeout = 30
bind = "0.0.0.0:{}".format(os.getenv("PORT", "3000"))

loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = "-"
errorlog = "-"
