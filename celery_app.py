from celery import Celery
from mepcalls.core.config import settings

celery_app = Celery(
    "mepcalls",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["mepcalls.tasks"],
)

celery_app.conf.beat_schedule = {
    "dedupe-call-logs": {
        "task": "mepcalls.tasks.dedupe_call_logs",
        "schedule": settings.dedupe_interval_seconds,
    }
}
