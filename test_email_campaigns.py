"""
Unit tests for AI email generation and email campaigns.

Tests:
- Context formatting (amounts, dates, summary paragraphs, reference ids)
- Generated emails resolve references and append the signature
- Invalid model output is retried, then fails
- Bulk email job: preview flags, primary staff signature, skipping
  donors that already have an email, per-donor failures
- Campaign launch/retry/regenerate rules and email review
"""

import json
from datetime import datetime
from types import SimpleNamespace

import pytest
from langchain_core.language_models import FakeListChatModel

from conftest import ORG_ID, USER_ID
from database.models import Donor, EmailGenerationSession, GeneratedEmail, User
from donor_crm.errors import CRMError
from donor_crm.jobs.bulk_email_job import run_bulk_email_generation
from donor_crm.models import (
    CreateSessionRequest,
    RegenerateRequest,
    UpdateEmailRequest,
    UpdateCampaignRequest,
    EmailPiece,
    EmailStatus,
    SessionStatus,
)
from donor_crm.services.email_campaign_service import EmailCampaignService
from donor_crm.services.email_generation_service import (
    EmailGenerationService,
    format_amount,
    format_date,
    split_summary_paragraphs,
    build_donation_contexts,
    build_communication_contexts,
)

VALID_EMAIL = json.dumps({
    "subject": "Thank you, John",
    "content": [
        {"piece": "Dear John,", "references": [], "add_newline_after": True},
        {
            "piece": "Your gift kept our pantry open every week.",
            "references": ["donation-1", "summary-paragraph-2", "comm-1-1"],
            "addNewlineAfter": False,
        },
    ],
})


# =============================================================================
# Context formatting
# =============================================================================


def test_context_formatting():
    assert format_amount(5000) == "$50.00"
    assert format_amount(123456) == "$1,234.56"
    assert format_date(datetime(2024, 3, 5)) == "March 5, 2024"
    assert split_summary_paragraphs("One.\n\n  Two.  \n \nThree.") == ["One.", "Two.", "Three."]
    assert split_summary_paragraphs(None) == []

    print("✅ Context formatting passed")


def test_donation_contexts_newest_first():
    project = SimpleNamespace(name="Shelter")
    donations = [
        SimpleNamespace(date=datetime(2023, 1, 10), amount=2500, project=None),
        SimpleNamespace(date=datetime(2024, 3, 5), amount=5000, project=project),
    ]

    contexts = build_donation_contexts(donations)

    assert contexts == {
        "donation-1": "Donation on March 5, 2024: $50.00 to Shelter",
        "donation-2": "Donation on January 10, 2023: $25.00",
    }
    assert build_communication_contexts([["a", "b"], ["c"]]) == {
        "comm-1-1": "a", "comm-1-2": "b", "comm-2-1": "c",
    }

    print("✅ Donation contexts passed")


# =============================================================================
# Email generation
# =============================================================================


@pytest.mark.asyncio
async def test_generate_email_resolves_references(db, org, donor, donation):
    service = EmailGenerationService(FakeListChatModel(responses=[VALID_EMAIL]))

    result = await service.generate_email(
        donor=donor,
        instruction="Thank donors for spring gifts",
        organization=org,
        donations=[donation],
        communications=[["Thanks for the shelter tour!"]],
        website_summary=org.website_summary,
        signature="Warmly,\nSarah",
    )

    assert result.donor_id == donor.id
    assert result.subject == "Thank you, John"
    assert result.reference_contexts["donation-1"] == "Donation on March 5, 2024: $50.00 to General"
    assert result.reference_contexts["comm-1-1"] == "Previous message: Thanks for the shelter tour!"
    assert result.reference_contexts["summary-paragraph-2"] == \
        "Organization summary: We run a food pantry every week."

    pieces = result.structured_content
    assert len(pieces) == 3, "Signature is appended as its own piece"
    assert pieces[1]["add_newline_after"] is True, "Piece before the signature gets a newline"
    assert pieces[-1] == {"piece": "Warmly,\nSarah", "references": [], "add_newline_after": False}

    print(f"✅ Email generation passed: {result.subject}")


@pytest.mark.asyncio
async def test_generate_email_retries_invalid_output(db, org, donor):
    service = EmailGenerationService(FakeListChatModel(responses=["Sorry, no JSON here", VALID_EMAIL]))

    result = await service.generate_email(donor=donor, instruction="Say hi", organization=org)

    assert result.subject == "Thank you, John"
    assert "donation-1" not in result.reference_contexts, "No donations means no donation contexts"

    print("✅ Email generation retry passed")


@pytest.mark.asyncio
async def test_generate_email_gives_up_after_attempts(db, org, donor):
    bad = json.dumps({"subject": "", "content": []})
    service = EmailGenerationService(FakeListChatModel(responses=[bad, "still not json"]))

    with pytest.raises(ValueError) as exc:
        await service.generate_email(donor=donor, instruction="Say hi", organization=org)

    assert "Failed to generate email after 2 attempts" in str(exc.value)

    print("✅ Email generation failure passed")


# =============================================================================
# Bulk email job
# =============================================================================


def _session(db, donor_ids, preview_ids=None, status=SessionStatus.PENDING.value):
    session = EmailGenerationSession(
        organization_id=ORG_ID,
        user_id=USER_ID,
        job_name="Spring thanks",
        instruction="Thank donors for spring gifts",
        chat_history=[],
        selected_donor_ids=donor_ids,
        preview_donor_ids=preview_ids or [],
        status=status,
        total_donors=len(donor_ids),
        completed_donors=0,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def _payload(session):
    return {
        "session_id": session.id,
        "organization_id": ORG_ID,
        "user_id": USER_ID,
        "instruction": session.instruction,
        "refined_instruction": None,
        "selected_donor_ids": list(session.selected_donor_ids),
        "preview_donor_ids": list(session.preview_donor_ids),
    }


def _second_donor(db):
    person = Donor(organization_id=ORG_ID, first_name="Mary", last_name="Jones", email="mary@example.com", notes=[])
    db.add(person)
    db.commit()
    return person


@pytest.mark.asyncio
async def test_bulk_email_job_generates_emails(db, org, staff, donor, donation):
    staff.is_primary = True
    db.commit()
    mary = _second_donor(db)
    session = _session(db, [donor.id, mary.id], preview_ids=[donor.id])
    generator = EmailGenerationService(FakeListChatModel(responses=[VALID_EMAIL]))

    result = await run_bulk_email_generation(_payload(session), db, generator)

    assert result["status"] == "success"
    assert result["emails_generated"] == 2
    assert result["donors_failed"] == 0

    db.refresh(session)
    assert session.status == "COMPLETED"
    assert session.completed_donors == 2
    assert session.refined_instruction == "Thank donors for spring gifts"
    assert session.completed_at is not None

    emails = {e.donor_id: e for e in db.query(GeneratedEmail).all()}
    assert emails[donor.id].is_preview is True
    assert emails[mary.id].is_preview is False
    assert emails[donor.id].status == "PENDING_APPROVAL"
    assert emails[donor.id].structured_content[-1]["piece"] == "Warmly,\nSarah", \
        "Primary staff signature is appended"

    print(f"✅ Bulk email job passed: {result['emails_generated']} emails")


@pytest.mark.asyncio
async def test_bulk_email_job_uses_user_signature_without_primary_staff(db, org, donor):
    db.add(User(id=USER_ID, email="me@example.com", email_signature="Cheers, Me", memory=[]))
    db.commit()
    session = _session(db, [donor.id])
    generator = EmailGenerationService(FakeListChatModel(responses=[VALID_EMAIL]))

    await run_bulk_email_generation(_payload(session), db, generator)

    email = db.query(GeneratedEmail).one()
    assert email.structured_content[-1]["piece"] == "Cheers, Me"

    print("✅ User signature fallback passed")


@pytest.mark.asyncio
async def test_bulk_email_job_skips_existing_emails(db, org, donor):
    session = _session(db, [donor.id])
    generator = EmailGenerationService(FakeListChatModel(responses=[VALID_EMAIL]))
    await run_bulk_email_generation(_payload(session), db, generator)

    result = await run_bulk_email_generation(_payload(session), db, generator)

    assert result["emails_generated"] == 0
    assert db.query(GeneratedEmail).count() == 1

    print("✅ Bulk email job skip passed")


class FailingForDonor:
    """Generator stub that fails for one donor."""

    def __init__(self, failing_id, inner):
        self.failing_id = failing_id
        self.inner = inner

    async def generate_email(self, donor, **kwargs):
        if donor.id == self.failing_id:
            raise ValueError("model unavailable")
        return await self.inner.generate_email(donor=donor, **kwargs)


@pytest.mark.asyncio
async def test_bulk_email_job_records_failed_donors(db, org, donor):
    mary = _second_donor(db)
    session = _session(db, [donor.id, mary.id])
    generator = FailingForDonor(mary.id, EmailGenerationService(FakeListChatModel(responses=[VALID_EMAIL])))

    result = await run_bulk_email_generation(_payload(session), db, generator)

    assert result["emails_generated"] == 1
    assert result["failed_donors"] == [{"donor_id": mary.id, "error": "model unavailable"}]
    db.refresh(session)
    assert session.status == "COMPLETED", "Per-donor failures do not fail the session"

    print("✅ Bulk email failures passed")


@pytest.mark.asyncio
async def test_bulk_email_job_fails_for_missing_organization(db, org, donor):
    session = _session(db, [donor.id])
    payload = dict(_payload(session), organization_id="org_missing")

    with pytest.raises(ValueError):
        await run_bulk_email_generation(payload, db, EmailGenerationService(FakeListChatModel(responses=[VALID_EMAIL])))

    db.refresh(session)
    assert session.status == "FAILED"
    assert session.error_message == "Organization org_missing not found"

    print("✅ Bulk email session failure passed")


# =============================================================================
# Campaigns
# =============================================================================


def _create(db, fake_executor, donor_ids):
    service = EmailCampaignService(db, fake_executor)
    session = service.create_session(
        ORG_ID,
        USER_ID,
        CreateSessionRequest(job_name="Spring thanks", instruction="Thank donors", selected_donor_ids=donor_ids),
    )
    return service, session


def test_create_session_checks_donors(db, fake_executor, donor, other_donor):
    service, session = _create(db, fake_executor, [donor.id])
    assert session.status == "PENDING"
    assert session.total_donors == 1

    with pytest.raises(CRMError) as exc:
        _create(db, fake_executor, [donor.id, other_donor.id])
    assert exc.value.message == "One or more donors not found in this organization"

    print("✅ Campaign creation passed")


@pytest.mark.asyncio
async def test_launch_submits_bulk_email_job(db, fake_executor, donor):
    service, session = _create(db, fake_executor, [donor.id])

    launched = await service.launch_campaign(ORG_ID, USER_ID, session.id)

    job = fake_executor.submitted[0]
    assert job["job_id"].startswith(f"bulk_email_{session.id}_")
    assert job["func"] is run_bulk_email_generation
    assert job["args"][0]["selected_donor_ids"] == [donor.id]
    assert job["args"][0]["user_id"] == USER_ID
    assert launched.job_id == job["job_id"]
    assert launched.status == "PENDING"

    print(f"✅ Campaign launch passed: {job['job_id']}")


@pytest.mark.asyncio
async def test_generating_campaign_cannot_be_relaunched(db, fake_executor, donor):
    service, session = _create(db, fake_executor, [donor.id])
    db.get(EmailGenerationSession, session.id).status = SessionStatus.IN_PROGRESS.value
    db.commit()

    with pytest.raises(CRMError) as exc:
        await service.launch_campaign(ORG_ID, USER_ID, session.id)

    assert exc.value.message == "Campaign is already generating"
    assert fake_executor.submitted == []

    print("✅ Relaunch guard passed")


def _add_email(db, session_id, donor_id, is_sent=False):
    email = GeneratedEmail(
        session_id=session_id,
        donor_id=donor_id,
        subject="Hello",
        structured_content=[{"piece": "Hi", "references": [], "add_newline_after": False}],
        reference_contexts={},
        is_sent=is_sent,
        status="PENDING_APPROVAL",
    )
    db.add(email)
    db.commit()
    db.refresh(email)
    return email


@pytest.mark.asyncio
async def test_retry_rules(db, fake_executor, donor):
    mary = _second_donor(db)
    service, session = _create(db, fake_executor, [donor.id, mary.id])

    with pytest.raises(CRMError) as exc:
        await service.retry_campaign(ORG_ID, USER_ID, session.id)
    assert exc.value.message == "Only failed or completed campaigns can be retried"

    db.get(EmailGenerationSession, session.id).status = SessionStatus.FAILED.value
    db.commit()
    _add_email(db, session.id, donor.id)
    retried = await service.retry_campaign(ORG_ID, USER_ID, session.id)
    assert retried.status == "PENDING"
    assert len(fake_executor.submitted) == 1

    db.get(EmailGenerationSession, session.id).status = SessionStatus.COMPLETED.value
    db.commit()
    _add_email(db, session.id, mary.id)
    with pytest.raises(CRMError) as exc:
        await service.retry_campaign(ORG_ID, USER_ID, session.id)
    assert exc.value.message == "All emails have already been generated"

    print("✅ Campaign retry rules passed")


@pytest.mark.asyncio
async def test_regenerate_keeps_sent_emails(db, fake_executor, donor):
    mary = _second_donor(db)
    service, session = _create(db, fake_executor, [donor.id, mary.id])
    _add_email(db, session.id, donor.id, is_sent=True)
    _add_email(db, session.id, mary.id)

    regenerated = await service.regenerate_all_emails(
        ORG_ID, USER_ID, session.id, RegenerateRequest(instruction="Invite them to the gala")
    )

    remaining = db.query(GeneratedEmail).all()
    assert [e.donor_id for e in remaining] == [donor.id], "Only unsent emails are deleted"
    assert regenerated.instruction == "Invite them to the gala"
    assert regenerated.completed_donors == 1
    assert len(fake_executor.submitted) == 1

    print("✅ Campaign regenerate passed")


def test_email_review(db, fake_executor, donor):
    mary = _second_donor(db)
    service, session = _create(db, fake_executor, [donor.id, mary.id])
    draft = _add_email(db, session.id, donor.id)
    sent = _add_email(db, session.id, mary.id, is_sent=True)

    edited = service.update_email(
        ORG_ID, draft.id,
        UpdateEmailRequest(subject="New subject", structured_content=[EmailPiece(piece="Hello there")]),
    )
    assert edited.subject == "New subject"
    assert edited.structured_content == [{"piece": "Hello there", "references": [], "add_newline_after": False}]

    approved = service.update_email_status(ORG_ID, draft.id, EmailStatus.APPROVED)
    assert approved.status == "APPROVED"
    assert service.get_email_status(ORG_ID, draft.id)["status"] == "APPROVED"

    with pytest.raises(CRMError) as exc:
        service.update_email(ORG_ID, sent.id, UpdateEmailRequest(subject="x", structured_content=[]))
    assert exc.value.message == "Sent emails cannot be edited"

    print("✅ Email review passed")


def test_campaign_listing_and_details(db, fake_executor, donor):
    mary = _second_donor(db)
    service, session = _create(db, fake_executor, [donor.id, mary.id])
    _add_email(db, session.id, donor.id, is_sent=True)
    _add_email(db, session.id, mary.id)

    listing = service.list_campaigns(ORG_ID)
    summary = listing["campaigns"][0]
    assert listing["total_count"] == 1
    assert summary.total_emails == 2
    assert summary.sent_emails == 1

    detail = service.get_session(ORG_ID, session.id)
    assert len(detail.emails) == 2
    assert service.get_session_status(ORG_ID, session.id)["total_donors"] == 2

    renamed = service.update_campaign(ORG_ID, session.id, UpdateCampaignRequest(job_name="Renamed"))
    assert renamed.job_name == "Renamed"

    service.delete_campaign(ORG_ID, session.id)
    assert db.query(GeneratedEmail).count() == 0

    print("✅ Campaign listing passed")
