"""
CSV Import Service - imports donor accounts and pledges into a list

Accounts CSV: keyed by ACT_ID, with ACT_HisTitle/ACT_HisName/ACT_HisInitial,
ACT_HerTitle/ACT_HerName/ACT_HerInitial, ACT_LastName, Email, Tel1..Tel6,
ADR_Line1/ADR_City/ADR_State/ADR_Zip/ADR_Country and Line2 (full name).

Pledges CSV: ACT_ID, PLG_Amount (dollars), PLG_Date.
"""

import csv
import io
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import Donor, Donation, DonorList, DonorListMember
from .base import BaseService
from .project_service import get_or_create_default_project
from ..errors import not_found
from ..models import ImportResult

logger = logging.getLogger(__name__)

DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y-%m-%d %H:%M:%S", "%d-%b-%Y"]


def parse_csv(content: str) -> List[Dict[str, str]]:
    """Parse CSV text into rows keyed by (stripped) header."""
    if not content or not content.strip():
        return []
    reader = csv.DictReader(io.StringIO(content.strip()))
    rows = []
    for row in reader:
        rows.append({(k or "").strip(): (v or "").strip() for k, v in row.items()})
    return rows


def dollars_to_cents(amount: str) -> int:
    if not amount or not amount.strip():
        return 0
    cleaned = amount.replace("$", "").replace(",", "").strip()
    try:
        return round(float(cleaned) * 100)
    except ValueError:
        return 0


def parse_date(value: str) -> Optional[datetime]:
    if not value or not value.strip():
        return None
    value = value.strip()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _join(*parts: Optional[str]) -> str:
    return " ".join(p for p in parts if p).strip()


def extract_structured_names(account: Dict[str, str]) -> Dict[str, Any]:
    """
    Build donor name fields from an account row.

    Couples get "His... Last and Her... Last" as display name. Without
    his/her data the full name in Line2 is split on the first space.
    """
    his_title = account.get("ACT_HisTitle") or None
    his_name = account.get("ACT_HisName") or None
    his_initial = account.get("ACT_HisInitial") or None
    her_title = account.get("ACT_HerTitle") or None
    her_name = account.get("ACT_HerName") or None
    her_initial = account.get("ACT_HerInitial") or None
    last_name = account.get("ACT_LastName") or None

    has_his = bool(his_title or his_name or his_initial)
    has_her = bool(her_title or her_name or her_initial)

    if has_his or has_her:
        display_parts = []
        if has_his:
            display_parts.append(_join(his_title, his_name, his_initial, last_name))
        if has_her:
            display_parts.append(_join(her_title, her_name, her_initial, last_name))
        first_name = his_name or her_name or ""
        display_name = " and ".join(p for p in display_parts if p)
        return {
            "first_name": first_name,
            "last_name": last_name or "",
            "his_title": his_title,
            "his_first_name": his_name,
            "his_initial": his_initial,
            "his_last_name": last_name if has_his else None,
            "her_title": her_title,
            "her_first_name": her_name,
            "her_initial": her_initial,
            "her_last_name": last_name if has_her else None,
            "display_name": display_name or account.get("Line2") or _join(first_name, last_name),
            "is_couple": has_his and has_her,
        }

    full_name = account.get("Line2") or _join(his_name, last_name)
    parts = full_name.split(" ") if full_name else []
    return {
        "first_name": parts[0] if parts else "",
        "last_name": " ".join(parts[1:]),
        "display_name": full_name or None,
        "is_couple": False,
    }


def build_address(account: Dict[str, str]) -> Optional[str]:
    keys = ["ADR_Line1", "ADR_City", "ADR_State", "ADR_Zip", "ADR_Country"]
    parts = [account.get(k) for k in keys if account.get(k)]
    return ", ".join(parts) or None


def get_phone_number(account: Dict[str, str]) -> Optional[str]:
    for i in range(1, 7):
        phone = (account.get(f"Tel{i}") or "").strip()
        if phone:
            return phone[:20]
    return None


def validate_account(account: Dict[str, str]) -> List[str]:
    errors = []
    if not account.get("ACT_ID"):
        errors.append("Missing ACT_ID")
    if not account.get("Email"):
        errors.append("Missing Email")
    names = extract_structured_names(account)
    if not names["first_name"] and not names["last_name"]:
        errors.append("Missing name information")
    return errors


def validate_pledge(pledge: Dict[str, str]) -> List[str]:
    errors = []
    if not pledge.get("ACT_ID"):
        errors.append("Missing ACT_ID")
    if not pledge.get("PLG_Amount"):
        errors.append("Missing PLG_Amount")
    if not pledge.get("PLG_Date"):
        errors.append("Missing PLG_Date")
    return errors


class CSVImportService(BaseService):
    """Imports accounts/pledges CSV exports into a donor list."""

    def process_csv_files(
        self,
        organization_id: str,
        list_id: int,
        accounts_csv: str,
        pledges_csv: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ImportResult:
        db = self._get_db()
        try:
            donor_list = (
                db.query(DonorList)
                .filter(DonorList.id == list_id, DonorList.organization_id == organization_id)
                .first()
            )
            if not donor_list:
                raise not_found("List")

            result = ImportResult()
            accounts = parse_csv(accounts_csv)
            pledges = parse_csv(pledges_csv) if pledges_csv else []
            logger.info(f"Parsed {len(accounts)} account records and {len(pledges)} pledge records")

            donor_map = self._import_accounts(db, organization_id, list_id, accounts, user_id, result)
            if pledges:
                self._import_pledges(db, organization_id, donor_map, pledges, result)

            logger.info(
                f"CSV import completed for list {list_id}: "
                f"{result.donors_created} created, {result.donors_updated} updated, "
                f"{result.donations_created} donations, {len(result.errors)} errors"
            )
            return result
        finally:
            self._close_db(db)

    def _import_accounts(
        self,
        db: Session,
        organization_id: str,
        list_id: int,
        accounts: List[Dict[str, str]],
        user_id: Optional[str],
        result: ImportResult,
    ) -> Dict[str, int]:
        donor_map: Dict[str, int] = {}

        for account in accounts:
            act_id = account.get("ACT_ID", "")
            errors = validate_account(account)
            if errors:
                result.errors.append(f"Account {act_id}: {', '.join(errors)}")
                result.donors_skipped += 1
                continue

            names = extract_structured_names(account)
            values = dict(
                names,
                email=account["Email"],
                phone=get_phone_number(account),
                address=build_address(account),
            )

            donor = (
                db.query(Donor)
                .filter(Donor.organization_id == organization_id, Donor.external_id == act_id)
                .first()
            )
            if donor:
                changed = any(getattr(donor, key) != value for key, value in values.items())
                if changed:
                    for key, value in values.items():
                        setattr(donor, key, value)
                outcome = "updated" if changed else "skipped"
            else:
                donor = Donor(
                    organization_id=organization_id,
                    external_id=act_id,
                    state=account.get("ADR_State") or None,
                    notes=[],
                    **values,
                )
                db.add(donor)
                outcome = "created"

            try:
                db.flush()
            except IntegrityError as e:
                db.rollback()
                result.errors.append(f"Account {act_id}: {e.orig}")
                result.donors_skipped += 1
                continue

            if outcome == "created":
                result.donors_created += 1
            elif outcome == "updated":
                result.donors_updated += 1
            else:
                result.donors_skipped += 1

            donor_map[act_id] = donor.id

            member = (
                db.query(DonorListMember)
                .filter(DonorListMember.list_id == list_id, DonorListMember.donor_id == donor.id)
                .first()
            )
            if not member:
                db.add(DonorListMember(list_id=list_id, donor_id=donor.id, added_by=user_id))
                result.donors_added_to_list += 1

            db.commit()

        return donor_map

    def _import_pledges(
        self,
        db: Session,
        organization_id: str,
        donor_map: Dict[str, int],
        pledges: List[Dict[str, str]],
        result: ImportResult,
    ):
        project = get_or_create_default_project(db, organization_id)
        db.commit()

        for pledge in pledges:
            act_id = pledge.get("ACT_ID", "")
            errors = validate_pledge(pledge)
            if errors:
                result.errors.append(f"Pledge for {act_id}: {', '.join(errors)}")
                result.donations_skipped += 1
                continue

            donor_id = donor_map.get(act_id)
            if not donor_id:
                result.errors.append(f"Pledge for {act_id}: Corresponding donor not found")
                result.donations_skipped += 1
                continue

            amount = dollars_to_cents(pledge["PLG_Amount"])
            if amount <= 0:
                result.errors.append(f"Pledge for {act_id}: Invalid amount {pledge['PLG_Amount']}")
                result.donations_skipped += 1
                continue

            date = parse_date(pledge["PLG_Date"])
            if not date:
                result.errors.append(f"Pledge for {act_id}: Invalid date {pledge['PLG_Date']}")
                result.donations_skipped += 1
                continue

            # Same donor, amount and calendar day counts as already imported
            day_start = datetime(date.year, date.month, date.day)
            duplicate = (
                db.query(Donation.id)
                .filter(
                    Donation.donor_id == donor_id,
                    Donation.amount == amount,
                    Donation.date >= day_start,
                    Donation.date < day_start + timedelta(days=1),
                )
                .first()
            )
            if duplicate:
                result.donations_skipped += 1
                continue

            db.add(Donation(donor_id=donor_id, project_id=project.id, amount=amount, date=date, currency="USD"))
            db.commit()
            result.donations_created += 1


def get_csv_import_service(db: Optional[Session] = None) -> CSVImportService:
    """Get CSV import service instance."""
    return CSVImportService(db)
