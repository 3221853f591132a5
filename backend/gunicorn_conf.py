# backend/gunicorn_conf.py

# Gunicorn config file
# Run from the backend directory: gunicorn -c gunicorn_conf.py flowdesk.main:app

# Basic configuration
bind = "0.0.0.0:8000"
# Flow sessions and machine versions live in process memory, so a single
# worker must serve every request for a given flow.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"

# Trust X-Forwarded-* headers from a reverse proxy like Nginx
forwarded_allow_ips = "*"

# --- Logging ---
# Send access and error logs to stdout and stderr
accesslog = "-"
errorlog = "-"
# Set the log level
loglevel = "info"
