"""
Bulk donor research job

Researches donors in parallel batches. One donor failing does not stop
the rest; failures are returned in the job result.
"""

import asyncio
import logging
from typing import Dict, Any, Callable, Optional

from ..config import get_crm_settings
from ..services.person_research.service import PersonResearchService

logger = logging.getLogger(__name__)


async def run_bulk_donor_research(
    payload: Dict[str, Any],
    research_service_factory: Optional[Callable[[], PersonResearchService]] = None,
) -> Dict[str, Any]:
    """
    Payload keys: organization_id, user_id, donor_ids.

    Each donor is researched by its own service instance, which opens its
    own database session, so a rollback for one donor never touches another.

    Returns:
        {status, donors_processed, donors_successful, donors_failed, failed_donors}
    """
    factory = research_service_factory or PersonResearchService
    organization_id = payload["organization_id"]
    user_id = payload["user_id"]
    donor_ids = payload["donor_ids"]
    batch_size = max(1, get_crm_settings().bulk_research_concurrency)

    logger.info(f"[Bulk Research] Researching {len(donor_ids)} donors in batches of {batch_size}")
    successful = 0
    failed_donors = []

    for start in range(0, len(donor_ids), batch_size):
        batch = donor_ids[start:start + batch_size]
        results = await asyncio.gather(
            *(factory().conduct_donor_research(organization_id, user_id, donor_id) for donor_id in batch),
            return_exceptions=True,
        )
        for donor_id, result in zip(batch, results):
            if isinstance(result, Exception):
                logger.error(f"[Bulk Research] Donor {donor_id} failed: {result}")
                failed_donors.append({"donor_id": donor_id, "error": str(result)})
            else:
                successful += 1

    logger.info(f"[Bulk Research] Done: {successful} successful, {len(failed_donors)} failed")
    return {
        "status": "completed",
        "donors_processed": len(donor_ids),
        "donors_successful": successful,
        "donors_failed": len(failed_donors),
        "failed_donors": failed_donors,
    }
