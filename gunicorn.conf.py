"""Gunicorn settings for the sector stock service (ledger, transfer forms, public signing)."""
import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")
workers = int(os.getenv("GUNICORN_WORKERS", "2"))

# Composing a form renders a PDF in-process, and the QR image may be fetched remotely.
timeout = int(os.getenv("GUNICORN_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))

accesslog = os.getenv("GUNICORN_ACCESS_LOGFILE", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOGFILE", "-")
access_log_format = os.getenv(
    "GUNICORN_ACCESS_LOG_FORMAT",
    '%(h)s "%(r)s" %(s)s %(b)s %(L)ss req=%({x-request-id}i)s',
)

# Signing links are opened from phones through the public reverse proxy.
forwarded_allow_ips = os.getenv("GUNICORN_FORWARDED_ALLOW_IPS", "127.0.0.1")
