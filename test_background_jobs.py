"""
Unit tests for the background job executor.

Tests:
- Finished jobs are forgotten after the retention window
- Submitting a job prunes expired entries first
"""

from datetime import datetime, timedelta

from background_job_executor import BackgroundJobExecutor


async def ping():
    return "pong"


def test_finished_jobs_are_pruned():
    executor = BackgroundJobExecutor(retention_seconds=60)
    now = datetime(2025, 1, 1, 12, 0)
    executor.jobs = {
        "old": {"job_id": "old", "status": "completed", "finished_at": now - timedelta(seconds=61)},
        "old_failed": {"job_id": "old_failed", "status": "failed", "finished_at": now - timedelta(hours=2)},
        "recent": {"job_id": "recent", "status": "completed", "finished_at": now - timedelta(seconds=30)},
        "running": {"job_id": "running", "status": "running", "started_at": now - timedelta(hours=2)},
    }

    assert executor.prune_finished_jobs(now=now) == 2
    assert set(executor.jobs) == {"recent", "running"}, "Unfinished and recent jobs are kept"
    assert executor.prune_finished_jobs(now=now) == 0

    print("✅ Job pruning passed")


def test_submit_prunes_expired_jobs():
    executor = BackgroundJobExecutor(retention_seconds=60)
    executor.jobs["old"] = {
        "job_id": "old",
        "status": "completed",
        "finished_at": datetime.utcnow() - timedelta(hours=1),
    }

    executor.submit("new", ping)

    assert executor.get_job_status("old") is None
    status = executor.get_job_status("new")
    assert status["status"] == "pending"
    assert status["name"] == "ping"

    print("✅ Submit pruning passed")
