from celery import Celery
from celery.schedules import schedule
from kombu import Queue

from autopilot.core.config import settings

celery_app = Celery(
    "content_autopilot",
    broker=settings.cache_redis_url,
    backend=settings.cache_redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue="publishing",
    task_queues=(
        Queue("publishing"),
        Queue("scheduler"),
    ),
    task_routes={
        "workers.tasks.run_publish_cycle": {"queue": "publishing"},
        "workers.tasks.ingest_idea_emails": {"queue": "scheduler"},
        "workers.tasks.worker_heartbeat": {"queue": "scheduler"},
    },
    beat_schedule={
        "publish-linkedin": {
            "task": "workers.tasks.run_publish_cycle",
            "schedule": schedule(settings.publish_linkedin_interval_seconds),
            "args": ("linkedin",),
            "options": {"queue": "publishing"},
        },
        "publish-blog": {
            "task": "workers.tasks.run_publish_cycle",
            "schedule": schedule(settings.publish_blog_interval_seconds),
            "args": ("blog",),
            "options": {"queue": "publishing"},
        },
        "email-ingest": {
            "task": "workers.tasks.ingest_idea_emails",
            "schedule": schedule(settings.email_ingest_interval_seconds),
            "options": {"queue": "scheduler"},
        },
        "worker-heartbeat": {
            "task": "workers.tasks.worker_heartbeat",
            "schedule": schedule(15.0),
            "options": {"queue": "scheduler"},
        },
    },
)

celery_app.autodiscover_tasks(["workers"])
