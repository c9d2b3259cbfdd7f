"""Gunicorn configuration for the SkinBuddy chat service.

Usage:
    gunicorn main:app -c deploy/gunicorn.conf.py

Chat turns are I/O bound (model calls, storefront lookups) and hold an
NDJSON response open for the whole turn, so workers are async and timeouts
are sized for the longest tool-calling turn.
"""

import multiprocessing
import os

# ─── Server socket ──────────────────────────────────────────────

bind = os.getenv("BIND", "0.0.0.0:5000")
backlog = 1024

# ─── Worker processes ───────────────────────────────────────────
#
# One async worker per core.  Sessions must live in Redis
# (CONTEXT_STORE_TYPE=redis) when more than one worker runs.

workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count(), 4)))
worker_class = "uvicorn.workers.UvicornWorker"

# ─── Timeouts ───────────────────────────────────────────────────
#
# A turn with the maximum number of tool rounds can take ~90s.

timeout = 150
graceful_timeout = 45   # let in-flight turns finalize their history writes
keepalive = 75

# ─── Worker recycling ──────────────────────────────────────────

max_requests = 5000
max_requests_jitter = 500

# ─── Logging ────────────────────────────────────────────────────

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

proc_name = "skinbuddy-chat"


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info(
        "Starting SkinBuddy chat — workers=%d, timeout=%ds, bind=%s",
        workers,
        timeout,
        bind,
    )


def worker_exit(server, worker):
    server.log.info("Worker exit (pid: %s)", worker.pid)
