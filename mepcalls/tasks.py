from celery import shared_task
from sqlalchemy.orm import Session
from mepcalls.core.database import SessionLocal
from mepcalls.services.call_logs import delete_duplicates


@shared_task(name="mepcalls.tasks.dedupe_call_logs", bind=True, autoretry_for=(Exception,), retry_backoff=True, retry_kwargs={"max_retries": 5})
def dedupe_call_logs(self):
    db: Session = SessionLocal()
    try:
        return delete_duplicates(db)
    finally:
        db.close()
