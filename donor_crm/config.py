"""
Donor CRM Configuration

Settings for the language model, web search used by person research,
the WhatsApp Cloud API assistant, and background job concurrency.
"""

from pydantic_settings import BaseSettings
from typing import Optional, List


# =============================================================================
# Constants
# =============================================================================

GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

WHATSAPP_GRAPH_URL = "https://graph.facebook.com"

# Default project that imported and unassigned donations go to
DEFAULT_PROJECT_NAME = "General"
DEFAULT_PROJECT_DESCRIPTION = "Default project for imported donations"


# =============================================================================
# Settings Class
# =============================================================================


class DonorCRMSettings(BaseSettings):
    """Settings for the Donor CRM service."""

    # ==========================================================================
    # Language Model
    # ==========================================================================

    # Any model string accepted by langchain's init_chat_model
    llm_model: str = "claude-sonnet-4-5-20250929"
    anthropic_api_key: Optional[str] = None

    # Used for voice message transcription (Whisper)
    openai_api_key: Optional[str] = None
    transcription_model: str = "whisper-1"

    # ==========================================================================
    # Person Research
    # ==========================================================================

    google_search_api_key: Optional[str] = None
    google_search_engine_id: Optional[str] = None
    google_search_results: int = 6

    research_initial_queries: int = 3
    research_max_loops: int = 2

    crawler_max_urls: int = 4
    crawler_timeout_seconds: float = 10.0
    crawler_max_retries: int = 2
    crawler_max_content_length: int = 50000

    # Organization website crawl feeding the summary used in emails
    website_crawl_max_pages: int = 30
    website_crawl_batch_size: int = 10
    website_summary_max_content: int = 150000

    # Donors researched in parallel by the bulk research job
    bulk_research_concurrency: int = 15

    # ==========================================================================
    # Email Campaigns
    # ==========================================================================

    # Donors generated in parallel by the bulk email job
    bulk_email_concurrency: int = 10
    email_generation_attempts: int = 2

    # ==========================================================================
    # WhatsApp Cloud API
    # ==========================================================================

    whatsapp_token: Optional[str] = None
    whatsapp_verify_token: Optional[str] = None
    whatsapp_app_secret: Optional[str] = None
    whatsapp_api_version: str = "v17.0"

    # Messages of prior conversation sent to the model
    whatsapp_history_limit: int = 10

    # Window for ignoring retried webhook deliveries
    message_dedup_window_seconds: int = 300

    # ==========================================================================
    # General Settings
    # ==========================================================================

    cors_origins: List[str] = ["http://localhost:3000"]

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        extra = "ignore"


# Singleton instance
_settings: Optional[DonorCRMSettings] = None


def get_crm_settings() -> DonorCRMSettings:
    """Get the CRM settings singleton."""
    global _settings
    if _settings is None:
        _settings = DonorCRMSettings()
    return _settings


# =============================================================================
# Helper Functions
# =============================================================================


def is_web_search_configured() -> bool:
    """Check if Google Custom Search credentials are configured."""
    settings = get_crm_settings()
    return bool(settings.google_search_api_key and settings.google_search_engine_id)


def is_whatsapp_configured() -> bool:
    """Check if WhatsApp Cloud API credentials are configured."""
    settings = get_crm_settings()
    return bool(settings.whatsapp_token and settings.whatsapp_verify_token)
