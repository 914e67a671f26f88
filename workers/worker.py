"""Worker script to run Celery workers."""

from core.config import settings
from core.middleware import setup_logging
from workers.celery_app import celery_app

setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

if __name__ == "__main__":
    # Start worker on every queue the app routes to
    celery_app.worker_main(
        argv=[
            "worker",
            "--loglevel=info",
            "--concurrency=4",
            "-Q",
            "default,emails,housekeeping",
        ]
    )
