"""
Unit tests for donor lists and the accounts/pledges CSV import.

Tests:
- List CRUD, duplicate names, member counts
- Adding members skips existing members and other organizations' donors
- Lists built from donor criteria
- CSV helpers: money, dates, names, addresses, phones
- Full import: couples, invalid rows, duplicate pledges, unknown donors
- Re-importing unchanged accounts
- Accounts that conflict with existing donors
"""

from datetime import datetime

import pytest

from conftest import ORG_ID, USER_ID
from database.models import Donor, Donation
from donor_crm.errors import CRMError
from donor_crm.models import ListCreate, ListUpdate, ListCriteria
from donor_crm.services.list_service import ListService
from donor_crm.services.csv_import_service import (
    parse_csv,
    dollars_to_cents,
    parse_date,
    extract_structured_names,
    build_address,
    get_phone_number,
    validate_account,
    validate_pledge,
)

ACCOUNTS_CSV = """ACT_ID,ACT_HisTitle,ACT_HisName,ACT_HisInitial,ACT_HerTitle,ACT_HerName,ACT_HerInitial,ACT_LastName,Email,Tel1,ADR_Line1,ADR_City,ADR_State,ADR_Zip,ADR_Country,Line2
A1,Mr.,John,,Mrs.,Jane,,Doe,doe@example.com,555-1234,1 Main St,Springfield,IL,62701,USA,John and Jane Doe
A2,,,,,,,,solo@example.com,,,,,,,Alex Solo
A3,,,,,,,,,,,,,,,No Email
"""

PLEDGES_CSV = """ACT_ID,PLG_Amount,PLG_Date
A1,"$1,234.50",2024-03-05
A1,"$1,234.50",2024-03-05
A2,25,03/10/2024
A9,10,2024-01-01
"""


# =============================================================================
# Lists
# =============================================================================


def test_list_crud_and_duplicate_names(db, org):
    service = ListService(db)

    created = service.create(ORG_ID, ListCreate(name="Major Donors", description="Top givers"), USER_ID)
    assert created.member_count == 0
    assert created.created_by == USER_ID

    with pytest.raises(CRMError) as exc:
        service.create(ORG_ID, ListCreate(name="Major Donors"))
    assert exc.value.status_code == 409

    renamed = service.update(ORG_ID, created.id, ListUpdate(name="Top Donors", is_active=False))
    assert renamed.name == "Top Donors"
    assert service.list(ORG_ID, is_active=True) == []

    service.delete(ORG_ID, created.id)
    with pytest.raises(CRMError) as exc:
        service.get_by_id(ORG_ID, created.id)
    assert exc.value.message == "List not found"

    print("✅ List CRUD passed")


def test_add_donors_skips_existing_and_foreign(db, donor, other_donor):
    service = ListService(db)
    donor_list = service.create(ORG_ID, ListCreate(name="Spring Appeal"))

    added = service.add_donors(ORG_ID, donor_list.id, [donor.id, other_donor.id], USER_ID)
    again = service.add_donors(ORG_ID, donor_list.id, [donor.id], USER_ID)

    assert added == 1, "Donors of other organizations are skipped"
    assert again == 0, "Existing members are skipped"
    assert service.get_by_id(ORG_ID, donor_list.id).member_count == 1
    assert service.get_donor_ids_from_lists(ORG_ID, [donor_list.id]) == [donor.id]

    removed = service.remove_donors(ORG_ID, donor_list.id, [donor.id])
    assert removed == 1
    assert service.get_by_id(ORG_ID, donor_list.id).member_count == 0

    print("✅ List membership passed")


def test_create_list_by_criteria(db, org, donor, donation):
    db.add(Donor(organization_id=ORG_ID, first_name="Low", last_name="Giver", email="low@example.com", notes=[]))
    db.commit()

    created = ListService(db).create_by_criteria(
        ORG_ID,
        ListCreate(name="Fifty Plus"),
        ListCriteria(min_total_donated=5000, state="ca"),
        USER_ID,
    )

    assert created.member_count == 1
    assert ListService(db).get_donor_ids_from_lists(ORG_ID, [created.id]) == [donor.id]

    print("✅ List by criteria passed")


# =============================================================================
# CSV helpers
# =============================================================================


def test_csv_helpers():
    assert dollars_to_cents("$1,234.50") == 123450
    assert dollars_to_cents("25") == 2500
    assert dollars_to_cents("abc") == 0
    assert dollars_to_cents("") == 0

    assert parse_date("2024-03-05") == datetime(2024, 3, 5)
    assert parse_date("03/10/2024") == datetime(2024, 3, 10)
    assert parse_date("not a date") is None

    assert build_address({"ADR_Line1": "1 Main St", "ADR_City": "Springfield", "ADR_State": "IL"}) == \
        "1 Main St, Springfield, IL"
    assert build_address({}) is None

    assert get_phone_number({"Tel1": "", "Tel3": " 555-0199 "}) == "555-0199"
    assert get_phone_number({}) is None

    rows = parse_csv(" Name , Email \n Ann , ann@example.com \n")
    assert rows == [{"Name": "Ann", "Email": "ann@example.com"}]
    assert parse_csv("") == []

    print("✅ CSV helpers passed")


def test_extract_structured_names():
    couple = extract_structured_names({
        "ACT_HisTitle": "Dr.", "ACT_HisName": "Paul", "ACT_HisInitial": "R",
        "ACT_HerName": "Anne", "ACT_LastName": "Green",
    })
    assert couple["is_couple"] is True
    assert couple["first_name"] == "Paul"
    assert couple["display_name"] == "Dr. Paul R Green and Anne Green"
    assert couple["her_last_name"] == "Green"

    single = extract_structured_names({"Line2": "Maria de la Cruz"})
    assert single["first_name"] == "Maria"
    assert single["last_name"] == "de la Cruz"
    assert single["is_couple"] is False

    print("✅ Structured names passed")


def test_row_validation():
    assert validate_account({"ACT_ID": "A1", "Email": "a@example.com", "Line2": "A B"}) == []
    assert "Missing Email" in validate_account({"ACT_ID": "A1", "Line2": "A B"})
    assert "Missing name information" in validate_account({"ACT_ID": "A1", "Email": "a@example.com"})
    assert validate_pledge({"ACT_ID": "A1"}) == ["Missing PLG_Amount", "Missing PLG_Date"]

    print("✅ Row validation passed")


# =============================================================================
# Import
# =============================================================================


def test_import_accounts_and_pledges(db, org):
    service = ListService(db)
    donor_list = service.create(ORG_ID, ListCreate(name="Imported"))

    result = service.import_csv(ORG_ID, donor_list.id, ACCOUNTS_CSV, PLEDGES_CSV, USER_ID)

    assert result.donors_created == 2, f"Expected 2 donors, got {result.donors_created}"
    assert result.donors_skipped == 1
    assert result.donors_added_to_list == 2
    assert result.donations_created == 2
    assert result.donations_skipped == 2, "Duplicate pledge and unknown donor are skipped"
    assert "Account A3: Missing Email" in result.errors
    assert "Pledge for A9: Corresponding donor not found" in result.errors

    couple = db.query(Donor).filter(Donor.external_id == "A1").one()
    assert couple.is_couple is True
    assert couple.display_name == "Mr. John Doe and Mrs. Jane Doe"
    assert couple.phone == "555-1234"
    assert couple.state == "IL"

    gifts = db.query(Donation).filter(Donation.donor_id == couple.id).all()
    assert [g.amount for g in gifts] == [123450]
    assert gifts[0].project.name == "General", "Pledges go to the default project"

    print(f"✅ CSV import passed: {result.donors_created} donors, {result.donations_created} donations")


def test_reimport_unchanged_accounts_is_skipped(db, org):
    service = ListService(db)
    donor_list = service.create(ORG_ID, ListCreate(name="Imported"))
    service.import_csv(ORG_ID, donor_list.id, ACCOUNTS_CSV, PLEDGES_CSV)

    result = service.import_csv(ORG_ID, donor_list.id, ACCOUNTS_CSV, PLEDGES_CSV)

    assert result.donors_created == 0
    assert result.donors_updated == 0
    assert result.donors_skipped == 3
    assert result.donors_added_to_list == 0
    assert result.donations_created == 0

    print("✅ Re-import passed")


def test_import_updates_changed_account(db, org):
    service = ListService(db)
    donor_list = service.create(ORG_ID, ListCreate(name="Imported"))
    service.import_csv(ORG_ID, donor_list.id, ACCOUNTS_CSV)

    changed = ACCOUNTS_CSV.replace("solo@example.com", "alex@example.com")
    result = service.import_csv(ORG_ID, donor_list.id, changed)

    assert result.donors_updated == 1
    db.expire_all()
    assert db.query(Donor).filter(Donor.external_id == "A2").one().email == "alex@example.com"

    print("✅ Import update passed")


def test_import_reports_conflicting_account(db, org, donor):
    donor_list = ListService(db).create(ORG_ID, ListCreate(name="Imported"))
    conflicting = ACCOUNTS_CSV.splitlines()[0] + "\nB7,,,,,,,,john@example.com,,,,,,,Johnny Smith\n"

    result = ListService(db).import_csv(ORG_ID, donor_list.id, conflicting)

    assert result.donors_created == 0
    assert result.donors_skipped == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Account B7: "), "Database conflicts use the same prefix as row errors"

    print("✅ Conflicting account passed")


def test_import_requires_accounts(db, org):
    donor_list = ListService(db).create(ORG_ID, ListCreate(name="Imported"))

    with pytest.raises(CRMError) as exc:
        ListService(db).import_csv(ORG_ID, donor_list.id, "  ")

    assert exc.value.status_code == 400
    assert exc.value.message == "Accounts CSV is required"

    print("✅ Accounts CSV required passed")
