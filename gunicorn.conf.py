"""Gunicorn production configuration for the approval service."""
import multiprocessing
import os

chdir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "backend")
wsgi_app = "expense_approvals.main:app"

bind = os.environ.get("BIND", "0.0.0.0:8000")
# Per-expense locks are per process; row locks serialise across workers
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
graceful_timeout = 30
keepalive = 5
max_requests = 1000
max_requests_jitter = 100
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
