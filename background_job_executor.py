"""
Background Job Executor
Runs long donor jobs (bulk email generation, bulk person research) off the
request path. Uses APScheduler to run each job once, immediately, on the
application's event loop.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, Callable, Awaitable
import asyncio
import logging

from monitoring import capture_exception

logger = logging.getLogger(__name__)

# Finished jobs stay queryable for this long
JOB_RETENTION_SECONDS = 3600


class BackgroundJobExecutor:
    """Submits one-shot async jobs and tracks their status in memory"""

    def __init__(self, retention_seconds: int = JOB_RETENTION_SECONDS):
        self.scheduler = AsyncIOScheduler()
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.retention_seconds = retention_seconds
        self.is_running = False

    async def initialize(self):
        """Start the scheduler"""
        if self.is_running:
            return
        self.scheduler.start()
        self.is_running = True
        logger.info("Background job executor initialized")

    def submit(self, job_id: str, func: Callable[..., Awaitable[Any]], *args) -> str:
        """
        Run a job as soon as possible.

        Args:
            job_id: Unique job ID (a job with the same ID is replaced)
            func: Async callable to run
            *args: Arguments passed to func

        Returns:
            The job ID
        """
        self.prune_finished_jobs()

        async def execute_wrapper():
            self.jobs[job_id]["status"] = "running"
            self.jobs[job_id]["started_at"] = datetime.utcnow()
            try:
                result = await func(*args)
                self.jobs[job_id]["status"] = "completed"
                self.jobs[job_id]["result"] = result
                logger.info(f"Job {job_id} completed")
            except Exception as e:
                self.jobs[job_id]["status"] = "failed"
                self.jobs[job_id]["error"] = str(e)
                logger.error(f"Job {job_id} failed: {e}")
                capture_exception(e, {"job_id": job_id})
            finally:
                self.jobs[job_id]["finished_at"] = datetime.utcnow()

        self.jobs[job_id] = {
            "job_id": job_id,
            "name": getattr(func, "__name__", "job"),
            "status": "pending",
            "submitted_at": datetime.utcnow(),
        }

        self.scheduler.add_job(
            func=execute_wrapper,
            trigger=DateTrigger(run_date=datetime.now()),
            id=job_id,
            replace_existing=True,
        )
        logger.info(f"Job {job_id} submitted ({self.jobs[job_id]['name']})")
        return job_id

    def prune_finished_jobs(self, now: Optional[datetime] = None) -> int:
        """Forget completed and failed jobs older than the retention window"""
        cutoff = (now or datetime.utcnow()) - timedelta(seconds=self.retention_seconds)
        expired = [
            job_id for job_id, job in self.jobs.items()
            if job.get("finished_at") and job["finished_at"] < cutoff
        ]
        for job_id in expired:
            del self.jobs[job_id]
        if expired:
            logger.info(f"Pruned {len(expired)} finished jobs")
        return len(expired)

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Status of a submitted job, or None if unknown"""
        job = self.jobs.get(job_id)
        if not job:
            return None
        return {k: v for k, v in job.items() if k != "result"}

    async def shutdown(self):
        """Gracefully shutdown the scheduler"""
        if not self.is_running:
            return
        logger.info("Shutting down background job executor...")
        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Background job executor shut down")


# Global executor instance
executor_instance: Optional[BackgroundJobExecutor] = None


async def get_executor() -> BackgroundJobExecutor:
    """Get or create the global executor instance"""
    global executor_instance

    if executor_instance is None:
        executor_instance = BackgroundJobExecutor()
        await executor_instance.initialize()

    return executor_instance


async def main():
    """Standalone execution for testing"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    executor = await get_executor()

    async def ping():
        logger.info("ping")
        return "pong"

    executor.submit("ping", ping)
    await asyncio.sleep(1)
    logger.info(f"Job status: {executor.get_job_status('ping')}")
    await executor.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
