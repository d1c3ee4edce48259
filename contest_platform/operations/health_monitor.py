# contest_platform/operations/health_monitor.py
# Liveness/readiness health checks (database, disk, uptime)

import os
import shutil
import time
from typing import Dict

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from contest_platform import db

MIN_FREE_DISK_GB = float(os.getenv("MIN_FREE_DISK_GB", "0.1"))

health_bp = Blueprint("health", __name__)


def _check_db() -> Dict:
    try:
        db.session.execute(text("SELECT 1"))
        return {"ok": True, "status": "connected"}
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning("Health check database probe failed: %s", e)
        return {"ok": False, "status": "disconnected"}


def _check_disk() -> Dict:
    total, used, free = shutil.disk_usage(".")
    free_gb = free / (1024**3)
    return {"ok": free_gb >= MIN_FREE_DISK_GB, "free_gb": round(free_gb, 2), "min_required_gb": MIN_FREE_DISK_GB}


def check_health() -> Dict:
    """Aggregate overall system health."""
    database = _check_db()
    disk = _check_disk()
    started = current_app.extensions["contest_platform"].started_at
    overall = database["ok"] and disk["ok"]
    return {
        "status": "OK" if overall else "DEGRADED",
        "database": database,
        "disk": disk,
        "uptime_s": round(time.monotonic() - started, 3),
        "overall_ok": overall,
    }


@health_bp.get("/health")
def liveness():
    res = check_health()
    code = 200 if res["overall_ok"] else 503
    return jsonify(res), code


@health_bp.get("/ready")
def readiness():
    database = _check_db()
    code = 200 if database["ok"] else 503
    return jsonify({"database": database, "overall_ok": database["ok"]}), code
