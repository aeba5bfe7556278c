import os

# Server socket
port = int(os.environ.get('PORT', 5000))
bind = f'0.0.0.0:{port}'

# Worker processes
workers = int(os.environ.get('WEB_CONCURRENCY', 2))
worker_class = 'sync'
threads = 1

# Logging
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
accesslog = '-'  # Log to stdout
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"'
errorlog = '-'  # Log to stderr
capture_output = True

# Timeouts
timeout = 120
keepalive = 5

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190

# Performance
max_requests = 1000
max_requests_jitter = 50

# Workers load the production config unless told otherwise
os.environ.setdefault('FLASK_CONFIG', 'production')

reload = os.environ.get('FLASK_CONFIG') == 'development'
