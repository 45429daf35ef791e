"""
Website summary job

Crawls an organization's website (same host only, breadth first) and
stores a fundraising-oriented summary on the organization. Email
generation cites the summary paragraphs as summary-paragraph-N.
"""

import asyncio
import logging
from typing import Dict, Any, Optional

from langchain_core.language_models import BaseChatModel
from sqlalchemy.orm import Session

from database.database import SessionLocal
from database.models import Organization
from monitoring import capture_exception
from ..config import get_crm_settings
from ..errors import not_found
from ..llm import get_chat_model, invoke_text
from ..prompts import WEBSITE_SUMMARY_PROMPT
from ..services.person_research.web_crawler import WebCrawler

logger = logging.getLogger(__name__)

NO_CONTENT_SUMMARY = "Could not extract sufficient content from the website."
SUMMARY_FAILED = "Summary generation failed."


async def crawl_website(crawler: WebCrawler, start_url: str, max_pages: int, batch_size: int) -> str:
    """Text of up to max_pages same-site pages, visited in batches."""
    visited = set()
    queue = [start_url]
    texts = []

    while queue and len(visited) < max_pages:
        batch = queue[:min(batch_size, max_pages - len(visited))]
        queue = queue[len(batch):]
        visited.update(batch)

        logger.info(f"[Website Summary] Crawling {len(batch)} pages ({len(visited)}/{max_pages})")
        results = await asyncio.gather(*(crawler.crawl_url(url, include_links=True) for url in batch))

        for result in results:
            if not result["crawl_success"]:
                continue
            if result["text"]:
                texts.append(result["text"])
            for link in result.get("links", []):
                if link not in visited and link not in queue and len(visited) + len(queue) < max_pages:
                    queue.append(link)

    return "\n\n".join(texts)


async def crawl_and_summarize_website(
    payload: Dict[str, Any],
    db: Optional[Session] = None,
    crawler: Optional[WebCrawler] = None,
    llm: Optional[BaseChatModel] = None,
) -> Dict[str, Any]:
    """
    Payload keys: organization_id, url.

    Returns:
        {status, pages_text_length, summary_length}
    """
    settings = get_crm_settings()
    organization_id = payload["organization_id"]
    url = payload["url"]
    owns_db = db is None
    db = db or SessionLocal()

    try:
        organization = db.query(Organization).filter(Organization.id == organization_id).first()
        if not organization:
            raise not_found("Organization")

        logger.info(f"[Website Summary] Crawling {url} for organization {organization_id}")
        content = await crawl_website(
            crawler or WebCrawler(),
            url,
            settings.website_crawl_max_pages,
            max(1, settings.website_crawl_batch_size),
        )

        if not content.strip():
            logger.warning(f"[Website Summary] No text extracted from {url}")
            organization.website_summary = NO_CONTENT_SUMMARY
            db.commit()
            return {"status": "warning", "pages_text_length": 0, "summary_length": len(NO_CONTENT_SUMMARY)}

        if len(content) > settings.website_summary_max_content:
            content = content[:settings.website_summary_max_content] + "..."

        try:
            summary, usage = await invoke_text(
                llm or get_chat_model(temperature=0.3, max_tokens=4000),
                WEBSITE_SUMMARY_PROMPT.format(content=content),
            )
            logger.info(f"[Website Summary] Summary generated ({usage.total_tokens} tokens)")
        except Exception as e:
            logger.error(f"[Website Summary] Summarization failed for {organization_id}: {e}")
            capture_exception(e, {"organization_id": organization_id, "url": url})
            summary = SUMMARY_FAILED

        organization.website_summary = summary or SUMMARY_FAILED
        db.commit()
        logger.info(f"[Website Summary] Saved summary for organization {organization_id}")
        return {
            "status": "success" if summary and summary != SUMMARY_FAILED else "failed",
            "pages_text_length": len(content),
            "summary_length": len(organization.website_summary),
        }
    finally:
        if owns_db:
            db.close()
