from .models import (
    Organization,
    User,
    Project,
    Donor,
    Donation,
    Staff,
    StaffWhatsAppPhoneNumber,
    CommunicationThread,
    CommunicationContent,
    Todo,
    Template,
    DonorList,
    DonorListMember,
    EmailGenerationSession,
    GeneratedEmail,
    PersonResearch,
    WhatsAppChatMessage,
    StaffWhatsAppActivity,
)
from .database import get_db, init_db, SessionLocal

__all__ = [
    "Organization",
    "User",
    "Project",
    "Donor",
    "Donation",
    "Staff",
    "StaffWhatsAppPhoneNumber",
    "CommunicationThread",
    "CommunicationContent",
    "Todo",
    "Template",
    "DonorList",
    "DonorListMember",
    "EmailGenerationSession",
    "GeneratedEmail",
    "PersonResearch",
    "WhatsAppChatMessage",
    "StaffWhatsAppActivity",
    "get_db",
    "init_db",
    "SessionLocal",
]
