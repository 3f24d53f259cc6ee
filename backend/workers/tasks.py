import logging
from datetime import UTC, datetime

from autopilot.application.services.email_ingest_service import ingest_idea_emails as ingest_idea_emails_service
from autopilot.application.services.publish_cycle import PublishCycle
from autopilot.core.config import settings
from autopilot.core.errors import PersistenceError
from autopilot.domain import models  # noqa: F401
from autopilot.infrastructure.cache.redis_client import get_redis_client
from autopilot.infrastructure.db.session import SessionLocal
from autopilot.infrastructure.observability.metrics import measure_redis
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.run_publish_cycle", acks_late=True)
def run_publish_cycle(content_type: str) -> dict:
    with SessionLocal() as db:
        try:
            result = PublishCycle(content_type, mirror_counters=True).run(db)
        except PersistenceError:
            logger.exception("publish_cycle_task_persistence_failed content_type=%s", content_type)
            raise
    logger.info("publish_cycle_task_finished content_type=%s status=%s", content_type, result.status.value)
    return result.to_dict()


@celery_app.task(name="workers.tasks.ingest_idea_emails")
def ingest_idea_emails() -> dict:
    with SessionLocal() as db:
        result = ingest_idea_emails_service(db)
    return result.to_dict()


@celery_app.task(name="workers.tasks.worker_heartbeat")
def worker_heartbeat() -> dict:
    redis_client = get_redis_client()
    now = datetime.now(UTC).isoformat()
    with measure_redis("worker_heartbeat_set"):
        redis_client.set(
            settings.worker_heartbeat_key,
            now,
            ex=max(15, settings.worker_heartbeat_ttl_seconds),
        )
    return {"heartbeat_at": now}
