"""
Unit tests for the core CRM services.

Tests:
- Organization get-or-create, profile update and memory editing
- A new website URL starts the website summary job
- Donor create (individual and couple), duplicate email, staff checks
- Donor search filters, ordering by total donated, bulk delete
- Staff primary flag, deletion unassigning donors, WhatsApp toggle
- Projects and the default "General" project
- Donations with project/donor names and giving statistics
- Database errors mapped onto typed API errors
"""

from datetime import datetime

import pytest

from conftest import ORG_ID, OTHER_ORG_ID, USER_ID
from database.models import Donor, Donation
from donor_crm.errors import CRMError, ErrorCode, ErrorContext, ErrorHandler, not_found
from donor_crm.jobs.website_summary_job import crawl_and_summarize_website
from donor_crm.models import (
    OrganizationUpdate,
    DonorCreate,
    DonorUpdate,
    DonorSearchParams,
    DonorOrderBy,
    OrderDirection,
    StaffCreate,
    StaffUpdate,
    StaffSearchParams,
    ProjectCreate,
    DonationCreate,
    DonationUpdate,
    DonationSearchParams,
)
from donor_crm.services.organization_service import OrganizationService
from donor_crm.services.donor_service import DonorService
from donor_crm.services.staff_service import StaffService
from donor_crm.services.project_service import ProjectService
from donor_crm.services.donation_service import DonationService


# =============================================================================
# Organizations
# =============================================================================


def test_organization_created_on_first_use(db):
    """Unknown organization IDs get a bare record"""
    service = OrganizationService(db)

    created = service.get_or_create("org_new", name="New Org")
    again = service.get_or_create("org_new")

    assert created.id == "org_new"
    assert created.name == "New Org"
    assert again.name == "New Org", "Second call must return the existing record"
    assert created.memory == []

    print("✅ Organization get-or-create passed")


@pytest.mark.asyncio
async def test_organization_profile_update(db, org, fake_executor):
    service = OrganizationService(db, executor=fake_executor)

    updated = await service.update_current(ORG_ID, OrganizationUpdate(description="We feed people"))

    assert updated.description == "We feed people"
    assert updated.writing_instructions == "Keep it warm and short.", "Unset fields must not change"
    assert fake_executor.submitted == [], "No website change, no crawl"

    print("✅ Organization profile update passed")


@pytest.mark.asyncio
async def test_new_website_url_starts_summary_job(db, org, fake_executor):
    service = OrganizationService(db, executor=fake_executor)

    await service.update_current(ORG_ID, OrganizationUpdate(website_url="https://hopeshelter.org"))
    await service.update_current(ORG_ID, OrganizationUpdate(website_url="https://hopeshelter.org"))

    assert len(fake_executor.submitted) == 1, "Only a changed URL is crawled"
    job = fake_executor.submitted[0]
    assert job["func"] is crawl_and_summarize_website
    assert job["args"][0] == {"organization_id": ORG_ID, "url": "https://hopeshelter.org"}
    assert job["job_id"].startswith(f"website_summary_{ORG_ID}_")

    print("✅ Website summary trigger passed")


def test_organization_memory_editing(db, org):
    """Memory items can be added, replaced and removed by index"""
    service = OrganizationService(db)

    service.add_memory_item(ORG_ID, "Gala is in May")
    memory = service.add_memory_item(ORG_ID, "Board meets monthly")
    assert memory == ["Gala is in May", "Board meets monthly"]

    memory = service.update_memory_item(ORG_ID, 0, "Gala is in June")
    assert memory[0] == "Gala is in June"

    memory = service.remove_memory_item(ORG_ID, 1)
    assert memory == ["Gala is in June"]
    assert service.get_memory(ORG_ID) == ["Gala is in June"], "Memory must be persisted"

    with pytest.raises(CRMError) as exc:
        service.remove_memory_item(ORG_ID, 5)
    assert exc.value.status_code == 400
    assert exc.value.message == "Invalid memory index"

    print("✅ Organization memory editing passed")


def test_missing_organization_is_not_found(db):
    with pytest.raises(CRMError) as exc:
        OrganizationService(db).get_current("org_missing")

    assert exc.value.code == ErrorCode.NOT_FOUND
    assert exc.value.message == "Organization not found"

    print("✅ Missing organization passed")


# =============================================================================
# Donors
# =============================================================================


def test_create_donor_with_initial_note(db, org, staff):
    service = DonorService(db)

    donor = service.create(
        ORG_ID,
        DonorCreate(
            first_name="Ada",
            last_name="Lovelace",
            email="ada@example.com",
            assigned_to_staff_id=staff.id,
            notes="Met at the spring gala",
        ),
        USER_ID,
    )

    assert donor.organization_id == ORG_ID
    assert donor.assigned_to_staff_id == staff.id
    assert donor.high_potential_donor is False
    assert len(donor.notes) == 1
    assert donor.notes[0]["content"] == "Met at the spring gala"
    assert donor.notes[0]["created_by"] == USER_ID

    print("✅ Donor creation passed")


def test_create_couple_gets_display_name(db, org):
    """Couples without a display name get "His and Her" as one"""
    donor = DonorService(db).create(
        ORG_ID,
        DonorCreate(
            first_name="John",
            last_name="Doe",
            email="doe@example.com",
            is_couple=True,
            his_title="Mr.",
            his_first_name="John",
            his_last_name="Doe",
            her_title="Mrs.",
            her_first_name="Jane",
            her_last_name="Doe",
        ),
    )

    assert donor.display_name == "Mr. John Doe and Mrs. Jane Doe", f"Got {donor.display_name}"

    print("✅ Couple display name passed")


def test_duplicate_donor_email_conflicts(db, donor):
    with pytest.raises(CRMError) as exc:
        DonorService(db).create(
            ORG_ID,
            DonorCreate(first_name="Other", last_name="John", email="JOHN@example.com"),
        )

    assert exc.value.status_code == 409
    assert exc.value.message == "A donor with this email already exists"

    print("✅ Duplicate donor email passed")


def test_same_email_allowed_in_other_organization(db, donor):
    created = DonorService(db).create(
        OTHER_ORG_ID,
        DonorCreate(first_name="John", last_name="Smith", email="john@example.com"),
    )

    assert created.organization_id == OTHER_ORG_ID

    print("✅ Email uniqueness is per organization")


def test_donor_staff_must_belong_to_organization(db, org):
    with pytest.raises(CRMError) as exc:
        DonorService(db).create(
            ORG_ID,
            DonorCreate(first_name="A", last_name="B", email="ab@example.com", assigned_to_staff_id=999),
        )

    assert exc.value.status_code == 400
    assert exc.value.message == "Staff member not found in this organization"

    print("✅ Donor staff check passed")


def test_update_and_notes(db, donor):
    service = DonorService(db)

    updated = service.update(ORG_ID, donor.id, DonorUpdate(phone="555-0100", high_potential_donor=True))
    assert updated.phone == "555-0100"
    assert updated.high_potential_donor is True
    assert updated.first_name == "John"

    noted = service.add_note(ORG_ID, donor.id, "  Prefers phone calls  ", USER_ID)
    assert noted.notes[-1]["content"] == "Prefers phone calls"

    print("✅ Donor update and notes passed")


def test_donor_search_filters(db, org, staff, donor):
    service = DonorService(db)
    service.create(ORG_ID, DonorCreate(first_name="Mary", last_name="Jones", email="mary@example.com",
                                       state="NY", gender="female", assigned_to_staff_id=staff.id))

    by_name = service.list(ORG_ID, DonorSearchParams(search_term="john smith"))
    assert by_name.total_count == 1
    assert by_name.donors[0].id == donor.id

    by_state = service.list(ORG_ID, DonorSearchParams(state="ny"))
    assert [d.email for d in by_state.donors] == ["mary@example.com"]

    unassigned = service.list(ORG_ID, DonorSearchParams(only_unassigned=True))
    assert [d.id for d in unassigned.donors] == [donor.id]

    assigned = service.list(ORG_ID, DonorSearchParams(assigned_to_staff_id=staff.id))
    assert assigned.total_count == 1

    print("✅ Donor search filters passed")


def test_donor_pagination_and_total_count(db, org):
    service = DonorService(db)
    for i in range(5):
        service.create(ORG_ID, DonorCreate(first_name=f"Donor{i}", last_name="Test", email=f"d{i}@example.com"))

    page = service.list(ORG_ID, DonorSearchParams(limit=2, offset=2, order_by=DonorOrderBy.FIRST_NAME))

    assert page.total_count == 5, "Total count ignores pagination"
    assert [d.first_name for d in page.donors] == ["Donor2", "Donor3"]

    print("✅ Donor pagination passed")


def test_order_by_total_donated(db, org, project):
    big = Donor(organization_id=ORG_ID, first_name="Big", last_name="Giver", email="big@example.com", notes=[])
    small = Donor(organization_id=ORG_ID, first_name="Small", last_name="Giver", email="small@example.com", notes=[])
    none = Donor(organization_id=ORG_ID, first_name="No", last_name="Gifts", email="none@example.com", notes=[])
    db.add_all([big, small, none])
    db.commit()
    db.add_all([
        Donation(donor_id=big.id, project_id=project.id, amount=10000),
        Donation(donor_id=big.id, project_id=project.id, amount=5000),
        Donation(donor_id=small.id, project_id=project.id, amount=2500),
    ])
    db.commit()

    result = DonorService(db).list(
        ORG_ID,
        DonorSearchParams(order_by=DonorOrderBy.TOTAL_DONATED, order_direction=OrderDirection.DESC),
    )

    assert [d.first_name for d in result.donors] == ["Big", "Small", "No"]

    print("✅ Order by total donated passed")


def test_donor_ids_and_list_counts(db, donor):
    service = DonorService(db)

    assert service.get_all_ids(ORG_ID) == [donor.id]
    assert service.count_lists_for_donors(ORG_ID, [donor.id]) == {donor.id: 0}

    recipients = service.list_for_communication(ORG_ID, DonorSearchParams())
    assert recipients[0]["name"] == "John Smith"
    assert recipients[0]["email"] == "john@example.com"

    print("✅ Donor IDs and list counts passed")


def test_donor_not_visible_across_organizations(db, other_donor):
    with pytest.raises(CRMError) as exc:
        DonorService(db).get_by_id(ORG_ID, other_donor.id)

    assert exc.value.status_code == 404
    assert exc.value.message == "Donor not found"

    print("✅ Donor organization isolation passed")


def test_bulk_delete_collects_failures(db, donor):
    result = DonorService(db).bulk_delete(ORG_ID, [donor.id, 424242])

    assert result.success == 1
    assert result.failed == 1
    assert result.errors == ["Donor 424242: Donor not found"]
    assert db.query(Donor).filter(Donor.id == donor.id).first() is None

    print("✅ Bulk delete passed")


def test_bulk_assign_staff(db, staff, donor):
    updated = DonorService(db).bulk_update_assigned_staff(ORG_ID, [donor.id], staff.id)

    assert updated == 1
    db.expire_all()
    assert db.get(Donor, donor.id).assigned_to_staff_id == staff.id

    print("✅ Bulk staff assignment passed")


# =============================================================================
# Staff
# =============================================================================


def test_only_one_primary_staff(db, org, staff):
    service = StaffService(db)
    second = service.create(ORG_ID, StaffCreate(email="tom@example.com", first_name="Tom", last_name="Hall"))

    service.set_primary(ORG_ID, staff.id)
    service.set_primary(ORG_ID, second.id)

    primary = service.get_primary(ORG_ID)
    assert primary.id == second.id
    assert service.get_by_id(ORG_ID, staff.id).is_primary is False, "Previous primary must be cleared"

    service.unset_primary(ORG_ID, second.id)
    assert service.get_primary(ORG_ID) is None

    print("✅ Primary staff passed")


def test_staff_email_unique(db, staff):
    with pytest.raises(CRMError) as exc:
        StaffService(db).create(OTHER_ORG_ID, StaffCreate(email="Sarah@example.com", first_name="S", last_name="L"))

    assert exc.value.status_code == 409

    print("✅ Staff email uniqueness passed")


def test_delete_staff_unassigns_donors(db, staff, donor):
    DonorService(db).update_assigned_staff(ORG_ID, donor.id, staff.id)

    StaffService(db).delete(ORG_ID, staff.id)

    db.expire_all()
    assert db.get(Donor, donor.id).assigned_to_staff_id is None

    print("✅ Staff deletion unassigns donors")


def test_staff_list_signature_and_whatsapp(db, staff):
    service = StaffService(db)
    service.create(ORG_ID, StaffCreate(email="amy@example.com", first_name="Amy", last_name="Zed"))

    listed = service.list(ORG_ID, StaffSearchParams())
    assert [s.first_name for s in listed.staff] == ["Amy", "Sarah"]
    assert listed.total_count == 2

    assert service.update_signature(ORG_ID, staff.id, "Best, Sarah").signature == "Best, Sarah"
    assert service.toggle_whatsapp(ORG_ID, staff.id, False).whatsapp_enabled is False
    assert service.update(ORG_ID, staff.id, StaffUpdate(title="Director")).title == "Director"

    print("✅ Staff list, signature and WhatsApp toggle passed")


def test_assigned_donors(db, staff, donor):
    DonorService(db).update_assigned_staff(ORG_ID, donor.id, staff.id)

    donors = StaffService(db).get_assigned_donors(ORG_ID, staff.id)

    assert [d.id for d in donors] == [donor.id]

    print("✅ Assigned donors passed")


# =============================================================================
# Projects
# =============================================================================


def test_default_project_created_once(db, org):
    service = ProjectService(db)

    first = service.get_or_create_default(ORG_ID)
    second = service.get_or_create_default(ORG_ID)

    assert first.name == "General"
    assert first.id == second.id

    print("✅ Default project passed")


def test_project_list_filters(db, org):
    service = ProjectService(db)
    service.create(ORG_ID, ProjectCreate(name="Shelter Beds", goal=100000))
    service.create(ORG_ID, ProjectCreate(name="Archived Drive", active=False))

    active = service.list(ORG_ID, active=True)
    searched = service.list(ORG_ID, search_term="drive")

    assert [p.name for p in active] == ["Shelter Beds"]
    assert [p.name for p in searched] == ["Archived Drive"]

    print("✅ Project list filters passed")


def test_project_with_donations_cannot_be_deleted(db, project, donation):
    with pytest.raises(CRMError) as exc:
        ProjectService(db).delete(ORG_ID, project.id)

    assert exc.value.message == "Cannot delete a project that has donations"

    print("✅ Project delete guard passed")


# =============================================================================
# Donations
# =============================================================================


def test_create_donation_includes_names(db, donor, project):
    donation = DonationService(db).create(
        ORG_ID,
        DonationCreate(donor_id=donor.id, project_id=project.id, amount=2500, date=datetime(2024, 1, 2)),
    )

    assert donation.amount == 2500
    assert donation.currency == "USD"
    assert donation.project_name == "General"
    assert donation.donor_name == "John Smith"

    print("✅ Donation creation passed")


def test_donation_requires_donor_in_organization(db, other_donor, project):
    with pytest.raises(CRMError) as exc:
        DonationService(db).create(ORG_ID, DonationCreate(donor_id=other_donor.id, project_id=project.id, amount=100))

    assert exc.value.status_code == 400
    assert exc.value.message == "Donor not found in this organization"

    print("✅ Donation donor check passed")


def test_donation_update_and_list(db, donation):
    service = DonationService(db)

    updated = service.update(ORG_ID, donation.id, DonationUpdate(amount=7500))
    assert updated.amount == 7500

    listed = service.list(ORG_ID, DonationSearchParams(start_date=datetime(2024, 1, 1)))
    assert listed.total_count == 1

    empty = service.list(ORG_ID, DonationSearchParams(end_date=datetime(2023, 12, 31)))
    assert empty.total_count == 0

    print("✅ Donation update and list passed")


def test_donor_stats(db, donor, project, donation):
    db.add(Donation(donor_id=donor.id, project_id=project.id, amount=2500, date=datetime(2024, 6, 1)))
    db.commit()

    service = DonationService(db)
    stats = service.get_donor_stats(ORG_ID, donor.id)
    many = service.get_multiple_donor_stats(ORG_ID, [donor.id, 999])

    assert stats.total_donated == 7500
    assert stats.donation_count == 2
    assert stats.last_donation_date == datetime(2024, 6, 1)
    assert many[999].total_donated == 0, "Donors without donations report zeros"
    assert many[999].donation_count == 0

    print("✅ Donor stats passed")


def test_database_error_mapping():
    context = ErrorContext(user_id=USER_ID, organization_id=ORG_ID, operation="create_donor")

    conflict = ErrorHandler.handle_database_error(
        Exception('duplicate key value violates unique constraint "donors_email_key"'), context
    )
    assert conflict.code == ErrorCode.CONFLICT
    assert conflict.status_code == 409

    integrity = ErrorHandler.handle_database_error(Exception("insert violates foreign key constraint"))
    assert integrity.code == ErrorCode.BAD_REQUEST

    missing = ErrorHandler.handle_database_error(Exception("relation does not exist"))
    assert missing.code == ErrorCode.NOT_FOUND

    other = ErrorHandler.handle_database_error(Exception("server closed the connection"))
    assert other.code == ErrorCode.INTERNAL_SERVER_ERROR
    assert other.detail == "A database error occurred", "Internal details stay out of the response"

    assert ErrorHandler.is_database_error(Exception("connection timeout"))
    assert not ErrorHandler.is_database_error(Exception("bad input"))

    message = ErrorHandler.format_log_message("Failed", context, ValueError("boom"))
    assert message == "Failed (operation: create_donor, userId: user_test, organizationId: org_test) cause: boom"

    assert not_found("Donor").detail == "Donor not found"

    print("✅ Database error mapping passed")
