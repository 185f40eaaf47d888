"""Component probes shared by the deep-health endpoint and the core_check command."""
import time

from django.core.cache import cache
from django.db import DatabaseError, connection


def check_db():
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
            cur.fetchone()
    except DatabaseError as e:
        return {"ok": False, "error": str(e)}
    return {"ok": True}


def check_cache():
    key = "core_check_probe"
    val = str(time.time())
    try:
        cache.set(key, val, timeout=10)
        got = cache.get(key)
    except Exception as e:  # backend-specific client errors
        return {"ok": False, "error": str(e)}
    if got != val:
        return {"ok": False, "error": "Cache mismatch"}
    return {"ok": True}


PROBES = {"db": check_db, "cache": check_cache}


def run_checks(names):
    checks = {name: PROBES[name]() for name in names if name in PROBES}
    return all(c["ok"] for c in checks.values()), checks
