import logging

import redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mepcalls.api import auth, call_logs, excluded_contacts, health, heartbeat, reports, settings as settings_api, users
from mepcalls.core.config import settings
from mepcalls.core.database import Base, SessionLocal, engine
from mepcalls.core.logging import configure_logging
from mepcalls.services.bootstrap import seed_defaults
from mepcalls.services.heartbeat import HeartbeatStore, InMemoryHeartbeatStore, RedisHeartbeatStore

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (health, auth, users, call_logs, excluded_contacts, settings_api, heartbeat, reports):
    app.include_router(module.router)


def build_heartbeat_store() -> HeartbeatStore:
    if settings.heartbeat_backend == "redis":
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        return RedisHeartbeatStore(client, ttl_seconds=max(settings.heartbeat_live_seconds * 10, 600))
    return InMemoryHeartbeatStore()


def bootstrap() -> None:
    db = SessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)
    bootstrap()
    app.state.heartbeats = build_heartbeat_store()
    logger.info("%s started (%s)", settings.app_name, settings.environment)
