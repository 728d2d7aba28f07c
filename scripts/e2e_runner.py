#!/usr/bin/env python3
"""
e2e_runner.py

One-file end-to-end runner:
  - starts backend (uvicorn backend.main:app) in background, unless --no-backend
  - creates an organization (default categories and subjects are seeded)
  - adds a student, then drives optimistic create / update / delete of
    behavior logs through tracker_client against the live API
  - provokes one rejected create to show the rollback path
  - prints the dashboard stats

Usage (from repo root):
  python scripts/e2e_runner.py --port 8000

Notes:
  - DATABASE_URL must be set (environment or backend/.env); a throwaway
    sqlite file works: DATABASE_URL=sqlite:///./e2e.db
"""

import argparse
import asyncio
import os
import subprocess
import sys
import time
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tracker_client.api import ApiError
from tracker_client.config import build_client, make_cache
from tracker_client.resources import ResourceMutations, student_region_key
from tracker_client.view import DetailView, Notifier

PY = sys.executable  # ensures the same Python interpreter is used

def timestamp():
    return int(time.time())

def start_backend(log_path=None, port=8000):
    """Start uvicorn backend.main:app in background; returns Popen object."""
    print("=== STARTING BACKEND ===")
    env = os.environ.copy()
    cmd = [PY, "-m", "uvicorn", "backend.main:app", "--port", str(port)]
    stdout = open(log_path, "ab") if log_path else subprocess.DEVNULL
    proc = subprocess.Popen(cmd, cwd=str(REPO_ROOT), env=env, stdout=stdout, stderr=subprocess.STDOUT)
    print(f"Started uvicorn (pid={proc.pid}), logs -> {log_path}")
    return proc

def wait_for_backend(api, timeout=60):
    """Poll /health/db until the API and its database answer, or give up after `timeout` seconds."""
    print(f"Waiting for {api.base_url} ...", end="", flush=True)
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            status = api.request_sync("GET", "/health/db")
            print("\nBackend ready:", status)
            return True
        except ApiError:
            print(".", end="", flush=True)
            time.sleep(1)
    print("\nTimed out waiting for the backend.")
    return False

async def drive(api):
    cache = make_cache(api)
    notifier = Notifier()
    view = DetailView()

    org = await api.request("POST", "/api/organizations", {"name": f"E2E School {timestamp()}"})
    org_id = org["id"]
    print("Organization:", org_id)

    student = await api.request("POST", f"/api/organizations/{org_id}/students",
                                {"name": "Ada Example", "email": f"ada{timestamp()}@example.com"})
    categories = await api.fetch(("/api/organizations", org_id, "behavior-log-categories"))
    positive = next(c for c in categories if c["name"] == "Positive")

    logs = ResourceMutations(api, cache, org_id, "behavior-logs", view, notifier, label="Behavior log")
    await logs.load()
    cache.set(student_region_key(org_id, student["id"], "behavior-logs"), [])

    print("=== CREATE ===")
    out = await logs.create().run({
        "student_id": student["id"], "category_id": positive["id"],
        "notes": "Helped a classmate with fractions", "logged_by": "e2e",
    })
    print("state:", out.state.value, "record:", out.data and out.data["id"])
    created = out.data

    print("=== UPDATE ===")
    view.open(created)
    out = await logs.update().run({"id": created["id"], "updates": {"notes": "Helped two classmates"}})
    print("state:", out.state.value, "view notes:", view.selected and view.selected["notes"])

    print("=== REJECTED CREATE (missing notes) ===")
    before = cache.get(logs.region)
    out = await logs.create().run({"student_id": student["id"], "category_id": positive["id"]})
    print("state:", out.state.value, "error:", out.error)
    print("region restored:", cache.get(logs.region) == before, "dialog reopened:", view.dialog_open)

    print("=== DELETE ===")
    out = await logs.delete().run(created["id"])
    print("state:", out.state.value, "view open:", view.is_open)

    await cache.drain()
    print("Region after refetch:", len(cache.get(logs.region) or []), "log(s)")

    stats = await api.request("GET", f"/api/organizations/{org_id}/stats")
    print("Stats:", stats)
    print("Toasts:")
    for t in notifier.toasts:
        print(f"  [{t.variant}] {t.title}: {t.description}")

def main():
    p = argparse.ArgumentParser(description="End-to-end runner: backend -> client mutations")
    p.add_argument("--port", type=int, default=8000, help="Backend port (default 8000)")
    p.add_argument("--no-backend", action="store_true", help="Use an already running backend")
    args = p.parse_args()

    api = build_client(f"http://127.0.0.1:{args.port}")
    backend_log = REPO_ROOT / f"backend_uvicorn_{timestamp()}.log"

    backend_proc = None
    if not args.no_backend:
        backend_proc = start_backend(log_path=str(backend_log), port=args.port)
    try:
        if not wait_for_backend(api, timeout=60):
            print("Backend did not become healthy. Check log:", backend_log)
            sys.exit(1)
        try:
            asyncio.run(drive(api))
        except ApiError as e:
            print(f"[ERROR] API call failed ({e.status}): {e.message}")
            sys.exit(1)
    finally:
        if backend_proc is not None:
            backend_proc.terminate()
            backend_proc.wait(timeout=10)
            print("Backend stopped. Log:", backend_log)

    print("Done.")

if __name__ == "__main__":
    main()
