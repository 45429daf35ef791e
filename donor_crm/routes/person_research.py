"""
Person research routes: donor research, versions and bulk runs.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import ResearchRequest, BulkResearchRequest
from .dependencies import get_user_id, get_organization_id

router = APIRouter(prefix="/api/person-research", tags=["Person Research"])


@router.post("")
async def research_topic(
    data: ResearchRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
):
    """Run the research pipeline on a free-form topic. Nothing is stored."""
    from ..services.person_research import PersonResearchOrchestrator

    return await PersonResearchOrchestrator().conduct_person_research(
        research_topic=data.research_topic,
        organization_id=organization_id,
        user_id=user_id,
    )


@router.get("/statistics")
async def get_research_statistics(
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.person_research import get_person_research_service

    return get_person_research_service(db).get_research_statistics(organization_id)


@router.post("/bulk")
async def start_bulk_research(
    data: BulkResearchRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Queue research for the given donors, or for every donor not yet researched."""
    from ..services.person_research import get_person_research_service

    return await get_person_research_service(db).start_bulk_donor_research(
        organization_id, user_id, data.donor_ids, data.limit
    )


@router.post("/donors/{donor_id}")
async def research_donor(
    donor_id: int,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.person_research import get_person_research_service

    return await get_person_research_service(db).conduct_donor_research(organization_id, user_id, donor_id)


@router.get("/donors/{donor_id}")
async def get_donor_research(
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Live research for a donor, null when never researched."""
    from ..services.person_research import get_person_research_service

    return get_person_research_service(db).get_donor_research(organization_id, donor_id)


@router.get("/donors/{donor_id}/versions")
async def get_donor_research_versions(
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.person_research import get_person_research_service

    return get_person_research_service(db).get_all_donor_research_versions(organization_id, donor_id)


@router.get("/donors/{donor_id}/versions/{version}")
async def get_donor_research_version(
    donor_id: int,
    version: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.person_research import get_person_research_service

    return get_person_research_service(db).get_donor_research_version(organization_id, donor_id, version)


@router.put("/donors/{donor_id}/versions/{version}/live")
async def set_live_research_version(
    donor_id: int,
    version: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.person_research import get_person_research_service

    return get_person_research_service(db).set_live_version(organization_id, donor_id, version)
