"""
Database models for the Donor CRM
"""
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Boolean,
    Text,
    ForeignKey,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base


# =============================================================================
# Organizations & Users
# =============================================================================


class Organization(Base):
    """
    Nonprofit organization (tenant). IDs come from the auth provider.
    """
    __tablename__ = "organizations"

    id = Column(String, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255))
    image_url = Column(String)
    created_by = Column(String)

    # Profile used for AI prompts
    website_url = Column(String)
    website_summary = Column(Text)
    description = Column(Text)
    short_description = Column(Text)
    writing_instructions = Column(Text)
    donor_journey_text = Column(Text)
    memory = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    donors = relationship("Donor", back_populates="organization", cascade="all, delete-orphan")
    staff = relationship("Staff", back_populates="organization", cascade="all, delete-orphan")
    projects = relationship("Project", back_populates="organization", cascade="all, delete-orphan")


class User(Base):
    """
    Application user (authenticated via the auth provider)
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String(255), nullable=False)
    first_name = Column(String(255))
    last_name = Column(String(255))
    memory = Column(JSON, default=list)
    email_signature = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# =============================================================================
# Donors, Projects & Donations
# =============================================================================


class Project(Base):
    """
    Initiative or campaign that donations are made to
    """
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    active = Column(Boolean, default=True, nullable=False)
    goal = Column(Integer)  # cents
    tags = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    organization = relationship("Organization", back_populates="projects")
    donations = relationship("Donation", back_populates="project")


class Donor(Base):
    """
    Person or household tracked as a prospective or existing contributor.
    Couples carry separate his/her name parts.
    """
    __tablename__ = "donors"
    __table_args__ = (
        UniqueConstraint("email", "organization_id", name="donors_email_organization_unique"),
        UniqueConstraint("external_id", "organization_id", name="donors_external_id_organization_unique"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = Column(String(255))  # ID from external CRM systems

    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)

    his_title = Column(String(50))
    his_first_name = Column(String(255))
    his_initial = Column(String(10))
    his_last_name = Column(String(255))

    her_title = Column(String(50))
    her_first_name = Column(String(255))
    her_initial = Column(String(10))
    her_last_name = Column(String(255))

    display_name = Column(String(500))
    is_couple = Column(Boolean, default=False, nullable=False)

    email = Column(String(255), nullable=False)
    phone = Column(String(20))
    address = Column(Text)
    state = Column(String(50))
    gender = Column(String(10))  # male, female
    notes = Column(JSON, default=list)  # [{created_at, created_by, content}]

    assigned_to_staff_id = Column(Integer, ForeignKey("staff.id", ondelete="SET NULL"))
    current_stage_name = Column(String(255))
    high_potential_donor = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="donors")
    assigned_staff = relationship("Staff", back_populates="assigned_donors")
    donations = relationship("Donation", back_populates="donor", cascade="all, delete-orphan")
    list_memberships = relationship("DonorListMember", back_populates="donor", cascade="all, delete-orphan")
    research = relationship("PersonResearch", back_populates="donor", cascade="all, delete-orphan")


class Donation(Base):
    """
    Financial contribution (amount stored in cents)
    """
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    donor_id = Column(Integer, ForeignKey("donors.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    donor = relationship("Donor", back_populates="donations")
    project = relationship("Project", back_populates="donations")


# =============================================================================
# Staff
# =============================================================================


class Staff(Base):
    """
    Organization staff member who manages donor relationships
    """
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    title = Column(String(255))
    department = Column(String(255))
    is_real_person = Column(Boolean, default=True, nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)  # One primary per organization
    signature = Column(Text)
    whatsapp_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="staff")
    assigned_donors = relationship("Donor", back_populates="assigned_staff")
    phone_numbers = relationship("StaffWhatsAppPhoneNumber", back_populates="staff", cascade="all, delete-orphan")


class StaffWhatsAppPhoneNumber(Base):
    """
    Phone numbers allowed to use the WhatsApp assistant for a staff member
    """
    __tablename__ = "staff_whatsapp_phone_numbers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    phone_number = Column(String(20), nullable=False, unique=True)
    is_allowed = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    staff = relationship("Staff", back_populates="phone_numbers")


# =============================================================================
# Communications
# =============================================================================


class CommunicationThreadStaff(Base):
    """
    Staff participant in a communication thread
    """
    __tablename__ = "communication_thread_staff"

    thread_id = Column(Integer, ForeignKey("communication_threads.id", ondelete="CASCADE"), primary_key=True)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="CASCADE"), primary_key=True)

    thread = relationship("CommunicationThread", back_populates="staff_links")
    staff = relationship("Staff")


class CommunicationThreadDonor(Base):
    """
    Donor participant in a communication thread
    """
    __tablename__ = "communication_thread_donors"

    thread_id = Column(Integer, ForeignKey("communication_threads.id", ondelete="CASCADE"), primary_key=True)
    donor_id = Column(Integer, ForeignKey("donors.id", ondelete="CASCADE"), primary_key=True)

    thread = relationship("CommunicationThread", back_populates="donor_links")
    donor = relationship("Donor")


class CommunicationThread(Base):
    """
    Logged exchange (email/phone/text) with one or more donors
    """
    __tablename__ = "communication_threads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    channel = Column(String(20), nullable=False)  # email, phone, text
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    staff_links = relationship("CommunicationThreadStaff", back_populates="thread", cascade="all, delete-orphan")
    donor_links = relationship("CommunicationThreadDonor", back_populates="thread", cascade="all, delete-orphan")
    content = relationship(
        "CommunicationContent",
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="CommunicationContent.occurred_at",
    )


class CommunicationContent(Base):
    """
    Individual message in a communication thread
    """
    __tablename__ = "communication_content"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(Integer, ForeignKey("communication_threads.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    occurred_at = Column("datetime", DateTime, default=datetime.utcnow, nullable=False)
    from_staff_id = Column(Integer, ForeignKey("staff.id", ondelete="SET NULL"))
    from_donor_id = Column(Integer, ForeignKey("donors.id", ondelete="SET NULL"))
    to_staff_id = Column(Integer, ForeignKey("staff.id", ondelete="SET NULL"))
    to_donor_id = Column(Integer, ForeignKey("donors.id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    thread = relationship("CommunicationThread", back_populates="content")


# =============================================================================
# Todos, Templates & Lists
# =============================================================================


class Todo(Base):
    """
    Task for staff, optionally tied to a donor
    """
    __tablename__ = "todos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(String(50), nullable=False)  # PREDICTED_ACTION, MANUAL, ...
    status = Column(String(20), nullable=False, default="PENDING")
    priority = Column(String(10), nullable=False, default="MEDIUM")
    due_date = Column(DateTime)
    scheduled_date = Column(DateTime)
    completed_date = Column(DateTime)
    donor_id = Column(Integer, ForeignKey("donors.id", ondelete="CASCADE"))
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="SET NULL"))
    explanation = Column(Text)
    instruction = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    donor = relationship("Donor")
    staff = relationship("Staff")


class Template(Base):
    """
    Reusable communication prompt
    """
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    prompt = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class DonorList(Base):
    """
    Named collection of donors
    """
    __tablename__ = "donor_lists"
    __table_args__ = (
        UniqueConstraint("name", "organization_id", name="donor_lists_name_organization_unique"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    members = relationship("DonorListMember", back_populates="donor_list", cascade="all, delete-orphan")


class DonorListMember(Base):
    """
    Donor membership in a list
    """
    __tablename__ = "donor_list_members"
    __table_args__ = (
        UniqueConstraint("list_id", "donor_id", name="donor_list_members_donor_list_unique"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    list_id = Column(Integer, ForeignKey("donor_lists.id", ondelete="CASCADE"), nullable=False, index=True)
    donor_id = Column(Integer, ForeignKey("donors.id", ondelete="CASCADE"), nullable=False, index=True)
    added_by = Column(String)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    donor_list = relationship("DonorList", back_populates="members")
    donor = relationship("Donor", back_populates="list_memberships")


# =============================================================================
# Email Campaigns
# =============================================================================


class EmailGenerationSession(Base):
    """
    Batch job that produces AI-drafted donor emails
    """
    __tablename__ = "email_generation_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    template_id = Column(Integer, ForeignKey("templates.id", ondelete="SET NULL"))
    job_name = Column(String(255), nullable=False)
    instruction = Column(Text, nullable=False)
    refined_instruction = Column(Text)
    chat_history = Column(JSON, nullable=False, default=list)
    selected_donor_ids = Column(JSON, nullable=False, default=list)
    preview_donor_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="PENDING")
    job_id = Column(String)  # Background job ID
    total_donors = Column(Integer, nullable=False, default=0)
    completed_donors = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime)

    emails = relationship("GeneratedEmail", back_populates="session", cascade="all, delete-orphan")


class GeneratedEmail(Base):
    """
    Generated email for one donor in a session
    """
    __tablename__ = "generated_emails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("email_generation_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    donor_id = Column(Integer, ForeignKey("donors.id", ondelete="CASCADE"), nullable=False, index=True)
    subject = Column(Text, nullable=False)
    structured_content = Column(JSON, nullable=False)  # [{piece, references, addNewlineAfter}]
    reference_contexts = Column(JSON, nullable=False)  # {reference_id: context}
    is_preview = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default="PENDING_APPROVAL", nullable=False)
    is_sent = Column(Boolean, default=False, nullable=False)
    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    session = relationship("EmailGenerationSession", back_populates="emails")
    donor = relationship("Donor")


# =============================================================================
# Person Research
# =============================================================================


class PersonResearch(Base):
    """
    Versioned research result for a donor. Only one version per donor is live.
    """
    __tablename__ = "person_research"

    id = Column(Integer, primary_key=True, autoincrement=True)
    donor_id = Column(Integer, ForeignKey("donors.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String)
    research_topic = Column(Text, nullable=False)
    research_data = Column(JSON, nullable=False)
    is_live = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    donor = relationship("Donor", back_populates="research")


# =============================================================================
# WhatsApp
# =============================================================================


class WhatsAppChatMessage(Base):
    """
    Conversation between a staff member and the WhatsApp assistant
    """
    __tablename__ = "whatsapp_chat_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="CASCADE"))
    from_phone_number = Column(String(20), nullable=False, index=True)
    message_id = Column(String(255))
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    tool_calls = Column(JSON)
    tool_results = Column(JSON)
    tokens_used = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StaffWhatsAppActivity(Base):
    """
    Activity log for WhatsApp usage. Permission-denied events have no staff.
    """
    __tablename__ = "staff_whatsapp_activity_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="CASCADE"), index=True)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"))
    activity_type = Column(String(50), nullable=False)
    phone_number = Column(String(20), nullable=False)
    summary = Column(Text, nullable=False)
    data = Column(JSON)
    # "metadata" is reserved on declarative models
    activity_metadata = Column("metadata", JSON)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
