"""
API routers for the Donor CRM backend.
"""

from .organizations import router as organizations_router
from .donors import router as donors_router
from .staff import router as staff_router
from .projects import router as projects_router
from .donations import router as donations_router
from .lists import router as lists_router
from .todos import router as todos_router
from .templates import router as templates_router
from .communications import router as communications_router
from .email_campaigns import router as email_campaigns_router
from .person_research import router as person_research_router
from .whatsapp import router as whatsapp_router

all_routers = [
    organizations_router,
    donors_router,
    staff_router,
    projects_router,
    donations_router,
    lists_router,
    todos_router,
    templates_router,
    communications_router,
    email_campaigns_router,
    person_research_router,
    whatsapp_router,
]

__all__ = ["all_routers"]
