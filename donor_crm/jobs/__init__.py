"""
Background jobs submitted to the BackgroundJobExecutor.
"""

from .bulk_email_job import run_bulk_email_generation
from .bulk_research_job import run_bulk_donor_research
from .website_summary_job import crawl_and_summarize_website

__all__ = ["run_bulk_email_generation", "run_bulk_donor_research", "crawl_and_summarize_website"]
