"""
Pydantic models for Donor CRM API requests and responses.

Covers: Organizations, Donors, Staff, Projects, Donations, Lists, Todos,
Templates, Communications, Email Campaigns, Person Research, WhatsApp
"""

from pydantic import BaseModel, Field, EmailStr, AliasChoices
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class Gender(str, Enum):
    """Donor gender (individual donors)."""
    MALE = "male"
    FEMALE = "female"


class CommunicationChannel(str, Enum):
    """Channels a communication thread can use."""
    EMAIL = "email"
    PHONE = "phone"
    TEXT = "text"


class TodoStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TodoPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SessionStatus(str, Enum):
    """Email generation session lifecycle."""
    PENDING = "PENDING"
    GENERATING = "GENERATING"
    READY_TO_SEND = "READY_TO_SEND"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class EmailStatus(str, Enum):
    """Review status of a generated email."""
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"


class OrderDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DonorOrderBy(str, Enum):
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    EMAIL = "email"
    CREATED_AT = "created_at"
    TOTAL_DONATED = "total_donated"


class StaffOrderBy(str, Enum):
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    EMAIL = "email"
    CREATED_AT = "created_at"


class DonationOrderBy(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    CREATED_AT = "created_at"


class WhatsAppRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StaffActivityType(str, Enum):
    """Activity types recorded for WhatsApp usage."""
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_SENT = "message_sent"
    PERMISSION_DENIED = "permission_denied"
    DB_QUERY_EXECUTED = "db_query_executed"
    AI_RESPONSE_GENERATED = "ai_response_generated"
    VOICE_TRANSCRIBED = "voice_transcribed"
    ERROR_OCCURRED = "error_occurred"


class FlexibleQueryType(str, Enum):
    """Query shapes supported by the WhatsApp flexible query tool."""
    DONOR_DONATIONS_BY_PROJECT = "donor-donations-by-project"
    DONOR_DONATIONS_BY_DATE = "donor-donations-by-date"
    PROJECT_DONATIONS = "project-donations"
    DONOR_PROJECT_HISTORY = "donor-project-history"
    CUSTOM_DONOR_SEARCH = "custom-donor-search"


# =============================================================================
# Organization Models
# =============================================================================


class OrganizationUpdate(BaseModel):
    """Editable organization profile fields."""
    website_url: Optional[str] = None
    website_summary: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    writing_instructions: Optional[str] = None
    donor_journey_text: Optional[str] = None


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None
    website_url: Optional[str] = None
    website_summary: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    writing_instructions: Optional[str] = None
    donor_journey_text: Optional[str] = None
    memory: Optional[List[str]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemoryItemRequest(BaseModel):
    """Single organization memory entry."""
    item: str = Field(..., min_length=1)


# =============================================================================
# Donor Models
# =============================================================================


class DonorBase(BaseModel):
    """Shared donor fields."""
    external_id: Optional[str] = None
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    his_title: Optional[str] = Field(None, max_length=50)
    his_first_name: Optional[str] = None
    his_initial: Optional[str] = Field(None, max_length=10)
    his_last_name: Optional[str] = None
    her_title: Optional[str] = Field(None, max_length=50)
    her_first_name: Optional[str] = None
    her_initial: Optional[str] = Field(None, max_length=10)
    her_last_name: Optional[str] = None
    display_name: Optional[str] = Field(None, max_length=500)
    is_couple: bool = False
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    state: Optional[str] = Field(None, max_length=50)
    gender: Optional[Gender] = None
    assigned_to_staff_id: Optional[int] = None
    current_stage_name: Optional[str] = None
    high_potential_donor: Optional[bool] = None


class DonorCreate(DonorBase):
    """Create a donor."""
    notes: Optional[str] = Field(None, description="Initial note text")


class DonorUpdate(BaseModel):
    """Partial donor update."""
    external_id: Optional[str] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=255)
    last_name: Optional[str] = Field(None, min_length=1, max_length=255)
    his_title: Optional[str] = None
    his_first_name: Optional[str] = None
    his_initial: Optional[str] = None
    his_last_name: Optional[str] = None
    her_title: Optional[str] = None
    her_first_name: Optional[str] = None
    her_initial: Optional[str] = None
    her_last_name: Optional[str] = None
    display_name: Optional[str] = None
    is_couple: Optional[bool] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    gender: Optional[Gender] = None
    assigned_to_staff_id: Optional[int] = None
    current_stage_name: Optional[str] = None
    high_potential_donor: Optional[bool] = None


class DonorResponse(BaseModel):
    """Full donor response."""
    id: int
    organization_id: str
    external_id: Optional[str] = None
    first_name: str
    last_name: str
    his_title: Optional[str] = None
    his_first_name: Optional[str] = None
    his_initial: Optional[str] = None
    his_last_name: Optional[str] = None
    her_title: Optional[str] = None
    her_first_name: Optional[str] = None
    her_initial: Optional[str] = None
    her_last_name: Optional[str] = None
    display_name: Optional[str] = None
    is_couple: bool = False
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    gender: Optional[str] = None
    notes: Optional[List[Dict[str, Any]]] = None
    assigned_to_staff_id: Optional[int] = None
    current_stage_name: Optional[str] = None
    high_potential_donor: Optional[bool] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DonorSearchParams(BaseModel):
    """Donor list filters."""
    search_term: Optional[str] = None
    state: Optional[str] = None
    gender: Optional[Gender] = None
    assigned_to_staff_id: Optional[int] = None
    only_unassigned: bool = False
    list_id: Optional[int] = None
    not_in_any_list: bool = False
    only_researched: bool = False
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)
    order_by: Optional[DonorOrderBy] = None
    order_direction: OrderDirection = OrderDirection.ASC


class DonorListResponse(BaseModel):
    donors: List[DonorResponse]
    total_count: int


class DonorNoteRequest(BaseModel):
    content: str = Field(..., min_length=1)


class IdsRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class AssignStaffRequest(BaseModel):
    staff_id: Optional[int] = None


class BulkAssignStaffRequest(BaseModel):
    donor_ids: List[int] = Field(..., min_length=1)
    staff_id: Optional[int] = None


class BulkDeleteResponse(BaseModel):
    success: int
    failed: int
    errors: List[str] = []


# =============================================================================
# Staff Models
# =============================================================================


class StaffCreate(BaseModel):
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    title: Optional[str] = None
    department: Optional[str] = None
    is_real_person: bool = True
    signature: Optional[str] = None


class StaffUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=255)
    last_name: Optional[str] = Field(None, min_length=1, max_length=255)
    title: Optional[str] = None
    department: Optional[str] = None
    is_real_person: Optional[bool] = None
    signature: Optional[str] = None


class StaffResponse(BaseModel):
    id: int
    organization_id: str
    email: str
    first_name: str
    last_name: str
    title: Optional[str] = None
    department: Optional[str] = None
    is_real_person: bool = True
    is_primary: bool = False
    signature: Optional[str] = None
    whatsapp_enabled: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StaffSearchParams(BaseModel):
    search_term: Optional[str] = None
    is_real_person: Optional[bool] = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)
    order_by: Optional[StaffOrderBy] = None
    order_direction: OrderDirection = OrderDirection.ASC


class StaffListResponse(BaseModel):
    staff: List[StaffResponse]
    total_count: int


class SignatureUpdate(BaseModel):
    signature: Optional[str] = None


class PhoneNumberRequest(BaseModel):
    phone_number: str = Field(..., min_length=7, max_length=20)


class PhonePermissionRequest(BaseModel):
    is_allowed: bool


class WhatsAppToggleRequest(BaseModel):
    enabled: bool


class StaffPhoneNumberResponse(BaseModel):
    id: int
    staff_id: int
    phone_number: str
    is_allowed: bool
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# Project Models
# =============================================================================


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    active: bool = True
    goal: Optional[int] = Field(None, ge=0, description="Goal in cents")
    tags: List[str] = []


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    active: Optional[bool] = None
    goal: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None


class ProjectResponse(BaseModel):
    id: int
    organization_id: str
    name: str
    description: Optional[str] = None
    active: bool = True
    goal: Optional[int] = None
    tags: Optional[List[str]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Donation Models
# =============================================================================


class DonationCreate(BaseModel):
    donor_id: int
    project_id: int
    amount: int = Field(..., gt=0, description="Amount in cents")
    currency: str = Field("USD", min_length=3, max_length=3)
    date: Optional[datetime] = None


class DonationUpdate(BaseModel):
    donor_id: Optional[int] = None
    project_id: Optional[int] = None
    amount: Optional[int] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    date: Optional[datetime] = None


class DonationResponse(BaseModel):
    id: int
    donor_id: int
    project_id: int
    amount: int
    currency: str
    date: datetime
    project_name: Optional[str] = None
    donor_name: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DonationSearchParams(BaseModel):
    donor_id: Optional[int] = None
    project_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)
    order_by: DonationOrderBy = DonationOrderBy.DATE
    order_direction: OrderDirection = OrderDirection.DESC


class DonationListResponse(BaseModel):
    donations: List[DonationResponse]
    total_count: int


class DonorStatsResponse(BaseModel):
    """Aggregate giving for one donor."""
    donor_id: int
    total_donated: int = 0
    donation_count: int = 0
    last_donation_date: Optional[datetime] = None


# =============================================================================
# List Models
# =============================================================================


class ListCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True


class ListUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ListResponse(BaseModel):
    id: int
    organization_id: str
    name: str
    description: Optional[str] = None
    is_active: bool = True
    created_by: Optional[str] = None
    member_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ListMembersRequest(BaseModel):
    donor_ids: List[int] = Field(..., min_length=1)


class ListCriteria(BaseModel):
    """Donor selection criteria for building a list."""
    assigned_to_staff_id: Optional[int] = None
    state: Optional[str] = None
    high_potential_donor: Optional[bool] = None
    min_total_donated: Optional[int] = Field(None, ge=0, description="Cents")
    donated_after: Optional[datetime] = None


class CreateListByCriteriaRequest(ListCreate):
    criteria: ListCriteria


class CSVImportRequest(BaseModel):
    """Raw CSV exports: accounts (required) and pledges (optional)."""
    accounts_csv: str = Field(..., min_length=1)
    pledges_csv: Optional[str] = None


class ImportResult(BaseModel):
    """Outcome of a CSV import."""
    donors_created: int = 0
    donors_updated: int = 0
    donors_skipped: int = 0
    donations_created: int = 0
    donations_skipped: int = 0
    donors_added_to_list: int = 0
    errors: List[str] = []


# =============================================================================
# Todo Models
# =============================================================================


class TodoCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    type: str = Field(..., min_length=1)
    priority: TodoPriority = TodoPriority.MEDIUM
    due_date: Optional[datetime] = None
    scheduled_date: Optional[datetime] = None
    donor_id: Optional[int] = None
    staff_id: Optional[int] = None
    explanation: Optional[str] = None
    instruction: Optional[str] = None


class TodoUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[str] = None
    status: Optional[TodoStatus] = None
    priority: Optional[TodoPriority] = None
    due_date: Optional[datetime] = None
    scheduled_date: Optional[datetime] = None
    donor_id: Optional[int] = None
    staff_id: Optional[int] = None


class TodoBulkUpdate(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=100)
    data: TodoUpdate


class PredictedAction(BaseModel):
    type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    scheduled_date: Optional[datetime] = None
    explanation: Optional[str] = None
    instruction: Optional[str] = None


class PredictedActionsRequest(BaseModel):
    donor_id: int
    actions: List[PredictedAction] = Field(..., min_length=1)


class TodoResponse(BaseModel):
    id: int
    organization_id: str
    title: str
    description: str = ""
    type: str
    status: str
    priority: str
    due_date: Optional[datetime] = None
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    donor_id: Optional[int] = None
    staff_id: Optional[int] = None
    donor_name: Optional[str] = None
    explanation: Optional[str] = None
    instruction: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Template Models
# =============================================================================


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    prompt: str = Field(..., min_length=1)
    is_active: bool = True


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    prompt: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None


class TemplateResponse(BaseModel):
    id: int
    organization_id: str
    name: str
    description: Optional[str] = None
    prompt: str
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Communication Models
# =============================================================================


class ThreadCreate(BaseModel):
    channel: CommunicationChannel
    staff_ids: List[int] = []
    donor_ids: List[int] = []


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    occurred_at: Optional[datetime] = None
    from_staff_id: Optional[int] = None
    from_donor_id: Optional[int] = None
    to_staff_id: Optional[int] = None
    to_donor_id: Optional[int] = None


class ThreadMessageResponse(BaseModel):
    id: int
    thread_id: int
    content: str
    occurred_at: datetime
    from_staff_id: Optional[int] = None
    from_donor_id: Optional[int] = None
    to_staff_id: Optional[int] = None
    to_donor_id: Optional[int] = None

    class Config:
        from_attributes = True


class ThreadResponse(BaseModel):
    id: int
    channel: str
    staff_ids: List[int] = []
    donor_ids: List[int] = []
    latest_message: Optional[ThreadMessageResponse] = None
    messages: Optional[List[ThreadMessageResponse]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# =============================================================================
# Email Campaign Models
# =============================================================================


class EmailPiece(BaseModel):
    """One paragraph/sentence of a generated email with its source references."""
    piece: str
    references: List[str] = []
    add_newline_after: bool = Field(
        False, validation_alias=AliasChoices("add_newline_after", "addNewlineAfter")
    )


class GeneratedEmailContent(BaseModel):
    """Shape the language model must return for a donor email."""
    subject: str = Field(..., min_length=1, max_length=100)
    content: List[EmailPiece] = Field(..., min_length=1)


class CreateSessionRequest(BaseModel):
    job_name: str = Field(..., min_length=1, max_length=255)
    instruction: str = Field(..., min_length=1)
    refined_instruction: Optional[str] = None
    chat_history: List[Dict[str, str]] = []
    selected_donor_ids: List[int] = Field(..., min_length=1)
    preview_donor_ids: List[int] = []
    template_id: Optional[int] = None


class UpdateCampaignRequest(BaseModel):
    job_name: Optional[str] = Field(None, min_length=1, max_length=255)
    instruction: Optional[str] = None
    chat_history: Optional[List[Dict[str, str]]] = None
    selected_donor_ids: Optional[List[int]] = None
    template_id: Optional[int] = None


class RegenerateRequest(BaseModel):
    instruction: Optional[str] = None
    chat_history: Optional[List[Dict[str, str]]] = None


class UpdateEmailRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    structured_content: List[EmailPiece]
    reference_contexts: Optional[Dict[str, str]] = None


class UpdateEmailStatusRequest(BaseModel):
    status: EmailStatus


class GeneratedEmailResponse(BaseModel):
    id: int
    session_id: int
    donor_id: int
    subject: str
    structured_content: List[Dict[str, Any]]
    reference_contexts: Dict[str, str]
    is_preview: bool = False
    status: str
    is_sent: bool = False
    sent_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    id: int
    organization_id: str
    user_id: str
    template_id: Optional[int] = None
    job_name: str
    instruction: str
    refined_instruction: Optional[str] = None
    chat_history: List[Dict[str, Any]] = []
    selected_donor_ids: List[int] = []
    preview_donor_ids: List[int] = []
    status: str
    job_id: Optional[str] = None
    total_donors: int
    completed_donors: int
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionDetailResponse(BaseModel):
    session: SessionResponse
    emails: List[GeneratedEmailResponse] = []


class CampaignSummary(SessionResponse):
    sent_emails: int = 0
    total_emails: int = 0


# =============================================================================
# Person Research Models
# =============================================================================


class ResearchRequest(BaseModel):
    research_topic: str = Field(..., min_length=1)


class BulkResearchRequest(BaseModel):
    donor_ids: Optional[List[int]] = None
    limit: Optional[int] = Field(None, ge=1)


# =============================================================================
# WhatsApp Models
# =============================================================================


class ChatMessageResponse(BaseModel):
    id: int
    organization_id: str
    staff_id: Optional[int] = None
    from_phone_number: str
    role: str
    content: str
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_results: Optional[List[Dict[str, Any]]] = None
    tokens_used: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StaffActivityResponse(BaseModel):
    id: int
    staff_id: Optional[int] = None
    organization_id: Optional[str] = None
    activity_type: str
    phone_number: str
    summary: str
    data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="activity_metadata")
    created_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True
