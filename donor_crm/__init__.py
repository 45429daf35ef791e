"""
Donor CRM - donor relationship management for nonprofits

This package provides:
- Donors, staff, projects, donations, lists, todos and templates
- Communication threads with donors
- AI email campaigns generated per donor
- Web research that profiles donors
- A WhatsApp assistant staff can query about their donors

Architecture:
- clients/: Google search, WhatsApp Cloud API and Whisper clients
- services/: Business logic per entity, person research, WhatsApp assistant
- jobs/: Background jobs (bulk emails, bulk research)
- webhooks/: WhatsApp webhook handler
- routes/: FastAPI routers
- config.py: Settings
"""

from .config import get_crm_settings, DonorCRMSettings

__all__ = ["get_crm_settings", "DonorCRMSettings"]
