import os

# Booking and cart serialization holds process-local locks as well as database
# locks; on SQLite only a single worker process is safe.
_database_url = os.getenv('DATABASE_URL', 'sqlite:///./tutoring.db')

bind = os.getenv('BIND', '127.0.0.1:8000')
workers = 1 if _database_url.startswith('sqlite') else int(os.getenv('WEB_CONCURRENCY', '4'))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
graceful_timeout = 30
keepalive = 5
loglevel = "info"
accesslog = "-"
errorlog = "-"
