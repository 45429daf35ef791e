"""
API tests through the FastAPI test client.

Tests:
- Caller headers are required
- Organization profile and memory endpoints
- Donor CRUD, notes, cross-organization isolation, bulk delete
- Staff phone numbers and WhatsApp activity endpoints
- Projects, donations and donor stats
- List CSV import
- WhatsApp webhook handshake, signature and payload handling
"""

import pytest

from conftest import ORG_ID, OTHER_ORG_ID, USER_ID
from donor_crm.services.whatsapp.history_service import WhatsAppHistoryService
from donor_crm.config import get_crm_settings
from donor_crm.webhooks.whatsapp_webhook import InvalidWebhookObject, get_webhook_handler

ACCOUNTS_CSV_HEADER = (
    "ACT_ID,ACT_HisTitle,ACT_HisName,ACT_HisInitial,ACT_HerTitle,ACT_HerName,ACT_HerInitial,"
    "ACT_LastName,Email,Tel1,ADR_Line1,ADR_City,ADR_State,ADR_Zip,ADR_Country,Line2"
)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}

    print("✅ Health passed")


def test_caller_headers_required(client):
    missing_org = client.get("/api/donors", headers={"x-user-id": USER_ID})
    assert missing_org.status_code == 401
    assert missing_org.json()["detail"] == "Organization ID required"

    missing_user = client.post(
        "/api/donors",
        json={"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com"},
        headers={"x-organization-id": ORG_ID},
    )
    assert missing_user.status_code == 401
    assert missing_user.json()["detail"] == "User ID required"

    print("✅ Caller headers passed")


def test_organization_profile_and_memory(client):
    headers = {"x-user-id": USER_ID, "x-organization-id": "org_new"}

    created = client.get("/api/organizations/current", headers=headers)
    assert created.status_code == 200
    assert created.json()["id"] == "org_new"

    updated = client.patch("/api/organizations/current", json={"short_description": "Animal rescue"}, headers=headers)
    assert updated.json()["short_description"] == "Animal rescue"

    assert client.post("/api/organizations/current/memory", json={"item": "Gala in May"}, headers=headers).json() == \
        ["Gala in May"]
    assert client.put("/api/organizations/current/memory/0", json={"item": "Gala in June"}, headers=headers).json() == \
        ["Gala in June"]
    assert client.delete("/api/organizations/current/memory/3", headers=headers).status_code == 400
    assert client.delete("/api/organizations/current/memory/0", headers=headers).json() == []

    print("✅ Organization endpoints passed")


def test_donor_endpoints(client, headers, org, other_donor):
    created = client.post(
        "/api/donors",
        json={"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com", "notes": "Met at gala"},
        headers=headers,
    )
    assert created.status_code == 200, created.text
    donor_id = created.json()["id"]
    assert created.json()["notes"][0]["created_by"] == USER_ID

    duplicate = client.post(
        "/api/donors", json={"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com"}, headers=headers
    )
    assert duplicate.status_code == 409

    listed = client.get("/api/donors", params={"search_term": "ann"}, headers=headers).json()
    assert listed["total_count"] == 1

    patched = client.patch(f"/api/donors/{donor_id}", json={"state": "WA"}, headers=headers)
    assert patched.json()["state"] == "WA"

    noted = client.post(f"/api/donors/{donor_id}/notes", json={"content": "Likes dogs"}, headers=headers)
    assert len(noted.json()["notes"]) == 2

    foreign = client.get(f"/api/donors/{other_donor.id}", headers=headers)
    assert foreign.status_code == 404
    assert foreign.json()["detail"] == "Donor not found"

    deleted = client.post("/api/donors/bulk-delete", json={"ids": [donor_id, 424242]}, headers=headers).json()
    assert deleted["success"] == 1
    assert deleted["failed"] == 1

    print("✅ Donor endpoints passed")


def test_staff_phone_numbers(client, headers, staff):
    base = f"/api/staff/{staff.id}/phone-numbers"

    assert client.post(base, json={"phone_number": "(555) 123-4567"}, headers=headers).json() == {"success": True}
    duplicate = client.post(base, json={"phone_number": "555-123-4567"}, headers=headers)
    assert duplicate.status_code == 400

    numbers = client.get(base, headers=headers).json()
    assert [n["phone_number"] for n in numbers] == ["+15551234567"]
    assert numbers[0]["is_allowed"] is True

    client.put(f"{base}/+15551234567", json={"is_allowed": False}, headers=headers)
    assert client.get(base, headers=headers).json()[0]["is_allowed"] is False

    stats = client.get(f"/api/staff/{staff.id}/whatsapp/stats", headers=headers).json()
    assert stats["total_activities"] == 0

    missing = client.get("/api/staff/999/phone-numbers", headers=headers)
    assert missing.status_code == 404

    print("✅ Staff phone number endpoints passed")


def test_projects_donations_and_stats(client, headers, donor):
    project = client.post("/api/projects", json={"name": "Winter Coats", "goal": 100000}, headers=headers)
    assert project.status_code == 200, project.text
    project_id = project.json()["id"]

    for amount, date in ((2500, "2024-01-10T00:00:00"), (7500, "2024-02-10T00:00:00")):
        response = client.post(
            "/api/donations",
            json={"donor_id": donor.id, "project_id": project_id, "amount": amount, "date": date},
            headers=headers,
        )
        assert response.status_code == 200, response.text

    stats = client.get(f"/api/donors/{donor.id}/stats", headers=headers).json()
    assert stats["total_donated"] == 10000
    assert stats["donation_count"] == 2
    assert stats["last_donation_date"].startswith("2024-02-10")

    invalid = client.post(
        "/api/donations", json={"donor_id": donor.id, "project_id": project_id, "amount": 0}, headers=headers
    )
    assert invalid.status_code == 422, "Amounts must be positive"

    print("✅ Project and donation endpoints passed")


def test_list_import_endpoint(client, headers, org):
    donor_list = client.post("/api/lists", json={"name": "Imported"}, headers=headers).json()
    accounts = ACCOUNTS_CSV_HEADER + "\nB1,,,,,,,,pat@example.com,,,,,,,Pat Kim\n"

    result = client.post(f"/api/lists/{donor_list['id']}/import", json={"accounts_csv": accounts}, headers=headers)

    assert result.status_code == 200, result.text
    assert result.json()["donors_created"] == 1
    assert client.get(f"/api/lists/{donor_list['id']}", headers=headers).json()["member_count"] == 1

    print("✅ List import endpoint passed")


# =============================================================================
# WhatsApp webhook
# =============================================================================


class FakeWebhookHandler:
    def __init__(self, valid_signature=True, error=None):
        self.valid_signature = valid_signature
        self.error = error
        self.payloads = []

    def verify_signature(self, payload, signature):
        return self.valid_signature

    async def handle_webhook(self, payload):
        if self.error:
            raise self.error
        self.payloads.append(payload)
        return len(payload.get("entry", []))


@pytest.fixture
def webhook(client):
    from donor_crm_backend import app

    def install(handler):
        app.dependency_overrides[get_webhook_handler] = lambda: handler
        return handler

    return install


def test_webhook_verification(client, monkeypatch):
    monkeypatch.setattr(get_crm_settings(), "whatsapp_verify_token", "verify-me")

    ok = client.get(
        "/api/whatsapp/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"},
    )
    assert ok.status_code == 200
    assert ok.text == "12345"

    wrong = client.get(
        "/api/whatsapp/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "12345"},
    )
    assert wrong.status_code == 403

    print("✅ Webhook verification passed")


def test_webhook_post(client, webhook):
    handler = webhook(FakeWebhookHandler())
    payload = {"object": "whatsapp_business_account", "entry": [{"changes": []}]}

    unsigned = client.post("/api/whatsapp/webhook", json=payload)
    assert unsigned.status_code == 401

    accepted = client.post("/api/whatsapp/webhook", json=payload, headers={"x-hub-signature-256": "sha256=abc"})
    assert accepted.json() == {"success": True, "processed": 1}
    assert handler.payloads == [payload]

    garbled = client.post(
        "/api/whatsapp/webhook", content=b"not json", headers={"x-hub-signature-256": "sha256=abc"}
    )
    assert garbled.status_code == 400

    webhook(FakeWebhookHandler(valid_signature=False))
    forged = client.post("/api/whatsapp/webhook", json=payload, headers={"x-hub-signature-256": "sha256=abc"})
    assert forged.status_code == 403

    webhook(FakeWebhookHandler(error=InvalidWebhookObject("Invalid object type")))
    invalid = client.post("/api/whatsapp/webhook", json={"object": "page"}, headers={"x-hub-signature-256": "x"})
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid object type"

    print("✅ Webhook POST passed")


def test_whatsapp_history_endpoint(client, db, headers, staff):
    history = WhatsAppHistoryService(db)
    history.save_message(ORG_ID, staff.id, "+15551234567", "user", "Who gave last week?")
    history.save_message(ORG_ID, staff.id, "+15551234567", "assistant", "Two donors gave last week.")

    response = client.get("/api/whatsapp/history", params={"phone_number": "+15551234567"}, headers=headers)
    assert response.status_code == 200
    assert [m["role"] for m in response.json()] == ["user", "assistant"]

    other = client.get(
        "/api/whatsapp/history",
        params={"phone_number": "+15551234567"},
        headers={"x-organization-id": OTHER_ORG_ID},
    )
    assert other.json() == [], "History is scoped to the caller's organization"

    cleared = client.delete("/api/whatsapp/history", params={"phone_number": "+15551234567"}, headers=headers)
    assert cleared.json() == {"success": True, "deleted": 2}

    print("✅ WhatsApp history endpoint passed")
