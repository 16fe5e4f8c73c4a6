"""
Gunicorn configuration for the Ringside API.

    gunicorn -c deploy/gunicorn.conf.py ringside.main:app
"""
import os
import multiprocessing

# Server socket
bind = os.environ.get("RINGSIDE_BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes; SQLite deployments should run a single worker
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 60
keepalive = 5

# Logging to stdout/stderr
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

proc_name = "ringside"

daemon = False
pidfile = "/tmp/ringside-gunicorn.pid"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190
