"""HTTP service entrypoint for the background worker."""

from __future__ import annotations

import os

from fastapi import FastAPI

from implant_notify.core.config import settings
from implant_notify.jobs.scheduler import NotificationScheduler
from implant_notify.routers import internal

app = FastAPI()
app.include_router(internal.router)
_scheduler: NotificationScheduler | None = None


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "scheduler_running": bool(_scheduler and _scheduler.is_running)}


@app.on_event("startup")
async def _startup() -> None:
    global _scheduler
    if not settings.SCHEDULER_ENABLED:
        return
    _scheduler = NotificationScheduler()
    _scheduler.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    if _scheduler:
        await _scheduler.stop()


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run("implant_notify.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
