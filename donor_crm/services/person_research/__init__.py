"""
Person research - web research pipeline that profiles donors.
"""

from .types import DonorInfo, PersonResearchError
from .orchestrator import PersonResearchOrchestrator
from .database_service import PersonResearchDatabaseService, get_person_research_database_service
from .service import (
    PersonResearchService,
    get_person_research_service,
    build_donor_research_topic,
    select_donors_for_research,
)

__all__ = [
    "DonorInfo",
    "PersonResearchError",
    "PersonResearchOrchestrator",
    "PersonResearchDatabaseService",
    "get_person_research_database_service",
    "PersonResearchService",
    "get_person_research_service",
    "build_donor_research_topic",
    "select_donors_for_research",
]
