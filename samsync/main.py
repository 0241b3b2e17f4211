# samsync/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI

from samsync.scheduler import get_scheduler_status, start_scheduler, stop_scheduler
from samsync.scripts.init_db import main as init_db_main
from samsync.settings import settings


app = FastAPI(title="SAM.gov Sync")


# ---------- Startup / Shutdown ----------

@app.on_event("startup")
def startup():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db_main()
    # Daily sync, reminders, saved searches and the startup sync/backfill
    start_scheduler()

@app.on_event("shutdown")
def shutdown():
    stop_scheduler()


# ---------- Root / Health ----------

@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "name": "SAM.gov Sync",
        "version": "1.0",
        "endpoints": {
            "health": "/health",
            "scheduler_status": "/scheduler/status",
        }
    }

@app.get("/health")
def health():
    return {"status": "ok"}


# ---------- Scheduler Status ----------

@app.get("/scheduler/status")
def scheduler_status():
    """Get the current scheduler status and upcoming jobs."""
    return get_scheduler_status()
