from time import perf_counter

from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from autopilot.core.config import settings
from autopilot.infrastructure.cache.redis_client import get_redis_client
from autopilot.infrastructure.db.session import SessionLocal
from autopilot.infrastructure.observability.metrics import measure_redis, metrics_response

router = APIRouter()


def _check_database() -> tuple[str, float | None]:
    try:
        started_at = perf_counter()
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        return "up", round((perf_counter() - started_at) * 1000, 2)
    except SQLAlchemyError:
        return "down", None


def _check_redis() -> tuple[str, float | None, bool]:
    try:
        redis_client = get_redis_client()
        started_at = perf_counter()
        with measure_redis("health_ping"):
            redis_client.ping()
        latency_ms = round((perf_counter() - started_at) * 1000, 2)
        with measure_redis("health_worker_heartbeat_check"):
            worker_alive = bool(redis_client.exists(settings.worker_heartbeat_key))
        return "up", latency_ms, worker_alive
    except RedisError:
        return "down", None, False


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check() -> dict:
    db_status, db_latency_ms = _check_database()
    redis_status, redis_latency_ms, worker_alive = _check_redis()
    # A missing worker degrades health but not readiness.
    overall = "ok" if db_status == "up" and redis_status == "up" and worker_alive else "degraded"
    return {
        "status": overall,
        "services": {
            "api": "up",
            "database": db_status,
            "redis": redis_status,
            "worker_alive": worker_alive,
            "db_latency_ms": db_latency_ms,
            "redis_latency_ms": redis_latency_ms,
        },
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
def readiness_check(response: Response) -> dict:
    payload = health_check()
    services = payload["services"]
    if services["database"] != "up" or services["redis"] != "up":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "services": services}
    return {"status": "ready", "services": services}


@router.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_response()
