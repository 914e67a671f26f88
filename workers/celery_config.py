"""Celery configuration for async task processing."""

from kombu import Exchange, Queue

from core.config import settings

# Broker configuration (Redis)
broker_url = settings.celery_broker_url
result_backend = settings.celery_result_backend

# Task routing and serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task execution settings
task_track_started = True
task_time_limit = 5 * 60  # 5 minutes hard limit
task_soft_time_limit = 4 * 60  # 4 minutes soft limit
task_acks_late = True

# Publishing must not stall the request that queued the task
broker_connection_retry_on_startup = True
broker_transport_options = {"max_retries": 1, "interval_start": 0, "interval_step": 0.2}

# Worker settings
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Queue configuration with routing
default_exchange = Exchange("talenthub", type="direct")
task_default_queue = "default"
task_queues = (
    Queue("default", exchange=default_exchange, routing_key="default"),
    Queue("emails", exchange=default_exchange, routing_key="emails"),
    Queue("housekeeping", exchange=default_exchange, routing_key="housekeeping"),
)

# Task routing
task_routes = {
    "workers.tasks.emails.*": {"queue": "emails"},
    "workers.tasks.notifications.*": {"queue": "housekeeping"},
}

# Periodic housekeeping (run with `celery beat`)
beat_schedule = {
    "purge-expired-notifications": {
        "task": "workers.tasks.notifications.purge_expired_notifications",
        "schedule": 6 * 60 * 60,
    },
}

# Result backend settings
result_expires = 3600  # Results expire after 1 hour
