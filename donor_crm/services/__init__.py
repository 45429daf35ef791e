"""
Donor CRM Business Logic

- organization_service: Organization profile and AI memory
- donor_service: Donor CRUD, search, assignment, notes
- staff_service: Staff CRUD, primary staff, signatures
- project_service / donation_service: Projects and giving history
- list_service / csv_import_service: Donor lists and CSV imports
- todo_service / template_service: Tasks and email templates
- communication_service: Threads and messages with donors
- email_generation_service / email_campaign_service: AI email campaigns
- person_research/: Web research pipeline
- whatsapp/: WhatsApp assistant services
"""

__all__ = []
