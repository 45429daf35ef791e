"""
Unit tests for the WhatsApp donor assistant.

Tests:
- Message deduplication window
- Phone number normalization and permission checks
- Conversation history and cleanup
- Staff activity logging and statistics
- Donor query tools and flexible queries
- Read-only SQL validation and execution
- Assistant tools bound to one organization
- Donor analysis across donor histories
- AI service flow with a stubbed agent and with a scripted model running real tools
- Webhook handling: text, voice, denied numbers, unsupported types
- Graph API messaging client and Whisper transcriber
"""

from datetime import datetime
from types import SimpleNamespace

import httpx
import pytest
from langchain_core.language_models import FakeListChatModel, FakeMessagesListChatModel
from langchain_core.messages import AIMessage, ToolMessage

from conftest import ORG_ID, OTHER_ORG_ID
from database.models import Donation, StaffWhatsAppActivity, WhatsAppChatMessage
from donor_agent.tools import create_donor_tools
from donor_crm.clients.voice_transcriber import VoiceTranscriber
from donor_crm.clients.whatsapp_messaging import WhatsAppAPIError, WhatsAppMessagingClient
from donor_crm.models import FlexibleQueryType
from donor_crm.services.whatsapp import ai_service as ai_service_module
from donor_crm.services.whatsapp.ai_service import (
    EMPTY_RESPONSE_ERROR,
    WhatsAppAIService,
    clear_system_prompt_cache,
    summarize_agent_messages,
)
from donor_crm.services.whatsapp.donor_analysis_service import WhatsAppDonorAnalysisService, format_donor_history
from donor_crm.services.whatsapp.history_service import WhatsAppHistoryService
from donor_crm.services.whatsapp.message_deduplication import MessageDeduplicator
from donor_crm.services.whatsapp.permission_service import (
    NOT_REGISTERED,
    PHONE_DISABLED,
    WHATSAPP_DISABLED,
    WhatsAppPermissionService,
    normalize_phone_number,
)
from donor_crm.services.whatsapp.query_tools_service import WhatsAppQueryToolsService
from donor_crm.services.whatsapp.sql_engine_service import (
    SQLValidationError,
    WhatsAppSQLEngineService,
    classify_error,
    get_schema_description,
    suggest_fix,
    validate_sql_query,
)
from donor_crm.services.whatsapp.staff_logging_service import WhatsAppStaffLoggingService
from donor_crm.webhooks import whatsapp_webhook
from donor_crm.webhooks.whatsapp_webhook import (
    PERMISSION_DENIED_REPLY,
    UNSUPPORTED_REPLY,
    VOICE_FAILURE_REPLY,
    InvalidWebhookObject,
    WhatsAppWebhookHandler,
)

PHONE = "+15551234567"
PHONE_NUMBER_ID = "pnid_1"


def activities(db, activity_type):
    return db.query(StaffWhatsAppActivity).filter(StaffWhatsAppActivity.activity_type == activity_type).all()


# =============================================================================
# Deduplication
# =============================================================================


def test_message_deduplication_window():
    now = [1000.0]
    dedup = MessageDeduplicator(window_seconds=300, clock=lambda: now[0])

    assert dedup.check_and_mark_message("How much did John give?", PHONE, ORG_ID) is False
    assert dedup.check_and_mark_message("  how much did john give?  ", PHONE, ORG_ID) is True, \
        "Case and surrounding whitespace are ignored"
    assert dedup.check_and_mark_message("How much did John give?", PHONE, OTHER_ORG_ID) is False
    assert dedup.size == 2

    now[0] += 301
    assert dedup.check_and_mark_message("How much did John give?", PHONE, ORG_ID) is False, \
        "Entries expire after the window"
    assert dedup.size == 1, "Expired entries are swept"

    dedup.clear()
    assert dedup.size == 0

    print("✅ Message deduplication passed")


# =============================================================================
# Permissions
# =============================================================================


def test_normalize_phone_number():
    assert normalize_phone_number("(555) 123-4567") == PHONE
    assert normalize_phone_number("15551234567") == PHONE
    assert normalize_phone_number("+44 20 7946 0958") == "+442079460958"
    assert normalize_phone_number("12345") == "12345"
    assert normalize_phone_number("") == ""

    print("✅ Phone normalization passed")


def test_phone_permissions(db, staff):
    service = WhatsAppPermissionService(db)

    assert service.add_phone_number_to_staff(staff.id, "(555) 123-4567") is True
    assert service.add_phone_number_to_staff(staff.id, "555-123-4567") is False, "Numbers are unique"

    allowed = service.check_phone_permission("5551234567")
    assert allowed["is_allowed"] is True
    assert allowed["staff_id"] == staff.id
    assert allowed["organization_id"] == ORG_ID
    assert allowed["staff"]["first_name"] == "Sarah"

    service.toggle_phone_permission(staff.id, PHONE, False)
    disabled = service.check_phone_permission(PHONE)
    assert disabled["is_allowed"] is False
    assert disabled["reason"] == PHONE_DISABLED
    assert disabled["staff_id"] == staff.id

    service.toggle_phone_permission(staff.id, PHONE, True)
    staff.whatsapp_enabled = False
    db.commit()
    assert service.check_phone_permission(PHONE)["reason"] == WHATSAPP_DISABLED

    assert [p.phone_number for p in service.get_staff_phone_numbers(staff.id)] == [PHONE]
    service.remove_phone_number_from_staff(staff.id, PHONE)
    unknown = service.check_phone_permission(PHONE)
    assert unknown["reason"] == NOT_REGISTERED
    assert unknown["organization_id"] is None

    print("✅ Phone permissions passed")


# =============================================================================
# History and activity log
# =============================================================================


def test_chat_history(db, staff):
    service = WhatsAppHistoryService(db)
    service.save_message(ORG_ID, staff.id, PHONE, "user", "Who is John?")
    service.save_message(ORG_ID, staff.id, PHONE, "assistant", "John Smith gave $50.")
    service.save_message(ORG_ID, staff.id, PHONE, "user", "Thanks")
    service.save_message(ORG_ID, staff.id, "+15550000000", "user", "Other phone")

    latest = service.get_chat_history(ORG_ID, PHONE, limit=2)

    assert [m.content for m in latest] == ["John Smith gave $50.", "Thanks"], "Newest messages, oldest first"
    assert service.format_history_for_ai(latest) == "Assistant: John Smith gave $50.\n\nUser: Thanks"

    assert service.cleanup_old_history(ORG_ID, keep_last_n=1) == 2
    assert [m.content for m in service.get_chat_history(ORG_ID, PHONE)] == ["Thanks"]
    assert service.clear_conversation_history(ORG_ID, PHONE) == 1
    assert service.get_chat_history(ORG_ID, PHONE) == []

    print("✅ Chat history passed")


def test_staff_activity_logging(db, staff):
    service = WhatsAppStaffLoggingService(db)
    long_message = "x" * 150

    assert service.log_message_received(staff.id, ORG_ID, PHONE, long_message) is True
    service.log_message_sent(staff.id, ORG_ID, PHONE, "Answer", {"total_tokens": 12})
    service.log_database_query(staff.id, ORG_ID, "+15550000000", "find_donors()", [{"id": 1}, {"id": 2}], 5)
    service.log_error(staff.id, ORG_ID, PHONE, "boom", None, "text_message_processing")
    service.log_permission_denied("+19999999999", NOT_REGISTERED, "hello")

    received = activities(db, "message_received")[0]
    assert received.summary == 'Received text message: "' + "x" * 100 + '..."'
    assert received.activity_metadata["content_length"] == 150

    query = activities(db, "db_query_executed")[0]
    assert query.activity_metadata["result_count"] == 2

    denied = activities(db, "permission_denied")[0]
    assert denied.staff_id is None
    assert denied.organization_id is None
    assert denied.data["attempted_message"] == "hello"

    stats = service.get_staff_activity_stats(staff.id, ORG_ID)
    assert stats == {
        "total_activities": 4,
        "messages_sent": 1,
        "messages_received": 1,
        "db_queries_executed": 1,
        "errors_occurred": 1,
        "voice_transcribed": 0,
        "unique_phone_numbers": ["+15550000000", PHONE],
    }
    assert len(service.get_staff_activity_log(staff.id, ORG_ID, limit=2)) == 2
    assert len(service.get_phone_activity_log(PHONE, ORG_ID)) == 3

    print("✅ Staff activity logging passed")


# =============================================================================
# Query tools
# =============================================================================


@pytest.fixture
def gifts(db, donor, donation, project, staff):
    """John Smith with two gifts to General, assigned to Sarah."""
    db.add(Donation(donor_id=donor.id, project_id=project.id, amount=2500, currency="USD",
                    date=datetime(2024, 6, 1)))
    donor.assigned_to_staff_id = staff.id
    db.commit()
    return donor


def test_donor_lookups(db, gifts, other_donor):
    tools = WhatsAppQueryToolsService(db)

    found = tools.find_donors_by_name("smith", ORG_ID)
    assert [d["id"] for d in found] == [gifts.id]
    assert found[0]["total_donations"] == 7500
    assert found[0]["donation_count"] == 2
    assert tools.find_donors_by_name("olga", ORG_ID) == [], "Other organizations are invisible"

    details = tools.get_donor_details(gifts.id, ORG_ID)
    assert details["assigned_staff"]["first_name"] == "Sarah"
    assert details["total_donations"] == 7500
    assert tools.get_donor_details(other_donor.id, ORG_ID) is None

    history = tools.get_donation_history(gifts.id, ORG_ID)
    assert [h["amount"] for h in history] == [2500, 5000], "Newest first"
    assert history[0]["project_name"] == "General"
    assert tools.get_donation_history(other_donor.id, ORG_ID) == []

    print("✅ Donor lookups passed")


def test_statistics_and_top_donors(db, gifts):
    tools = WhatsAppQueryToolsService(db)

    stats = tools.get_donor_statistics(ORG_ID)
    assert stats["total_donors"] == 1
    assert stats["total_donations"] == 2
    assert stats["total_donation_amount"] == 7500
    assert stats["average_donation_amount"] == 3750.0
    assert stats["individuals_count"] == 1
    assert stats["couples_count"] == 0

    top = tools.get_top_donors(ORG_ID, limit=5)
    assert [(d["id"], d["total_donations"]) for d in top] == [(gifts.id, 7500)]

    print("✅ Statistics and top donors passed")


def test_flexible_queries(db, gifts):
    tools = WhatsAppQueryToolsService(db)

    history = tools.execute_flexible_query(
        FlexibleQueryType.DONOR_PROJECT_HISTORY, ORG_ID, {"donor_name": "john"}
    )
    assert len(history) == 2
    assert all(row["project_total_from_donor"] == 7500 for row in history)
    assert all(row["project_donation_count"] == 2 for row in history)

    spring = tools.execute_flexible_query(
        "project-donations", ORG_ID, {"project_name": "gen", "start_date": "2024-01-01", "end_date": "2024-04-01"}
    )
    assert [row["donation_amount"] for row in spring] == [5000]

    search = tools.execute_flexible_query(
        FlexibleQueryType.CUSTOM_DONOR_SEARCH, ORG_ID, {"assigned_staff": "sarah lee", "state": "ca"}
    )
    assert [row["assigned_staff_name"] for row in search] == ["Sarah Lee"]
    assert search[0]["total_donations"] == 7500

    with pytest.raises(ValueError) as exc:
        tools.execute_flexible_query("donor-mood", ORG_ID)
    assert str(exc.value) == "Unknown query type: donor-mood"

    print("✅ Flexible queries passed")


# =============================================================================
# SQL engine
# =============================================================================


def test_sql_validation():
    query = "SELECT * FROM donors WHERE organization_id = 'org_test';"
    assert validate_sql_query(query) == "SELECT * FROM donors WHERE organization_id = 'org_test'"
    assert validate_sql_query(
        "select updated_at, created_at from donors where organization_id = 'x'"
    ).startswith("select"), "Column names containing keywords are fine"

    rejected = {
        "DELETE FROM donors WHERE organization_id = 'x'": "Only SELECT queries are allowed",
        "SELECT * FROM donors": "Queries must filter by organization_id",
        "SELECT 1 FROM donors WHERE organization_id = 'x'; DROP TABLE donors": "Multiple statements are not allowed",
        "SELECT * FROM donors WHERE organization_id = 'x' -- comment": "SQL comments are not allowed",
        "WITH d AS (SELECT 1) DELETE FROM donors WHERE organization_id = 'x'":
            "Dangerous SQL operation detected: DELETE is not allowed",
        "   ": "Empty query is not allowed",
    }
    for statement, message in rejected.items():
        with pytest.raises(SQLValidationError) as exc:
            validate_sql_query(statement)
        assert str(exc.value) == message, f"Unexpected rejection for {statement!r}"

    print("✅ SQL validation passed")


def test_sql_execution(db, donor, other_donor):
    engine = WhatsAppSQLEngineService(db)

    ok = engine.execute_raw_sql(f"SELECT first_name FROM donors WHERE organization_id = '{ORG_ID}'", ORG_ID)
    assert ok == {"success": True, "data": [{"first_name": "John"}]}

    missing = engine.execute_raw_sql("SELECT * FROM gifts WHERE organization_id = 'org_test'", ORG_ID)
    assert missing["success"] is False
    assert missing["error"]["type"] == "runtime"
    assert "Available tables" in missing["error"]["suggestion"]

    unscoped = engine.execute_raw_sql("SELECT * FROM donors", ORG_ID)
    assert unscoped["error"]["type"] == "security"
    assert unscoped["error"]["suggestion"].startswith("Add WHERE organization_id")

    schema = get_schema_description()
    assert "DONORS TABLE:" in schema
    assert "- id (INTEGER, primary key)" in schema
    assert "references donors.id" in schema

    print("✅ SQL execution passed")


def test_sql_error_classification():
    near_column = 'syntax error at or near "organization_id"'
    assert classify_error(near_column) == "syntax", "Syntax errors win over the organization_id check"
    assert suggest_fix(near_column).startswith('Check the SQL syntax near "organization_id"')

    assert classify_error("Queries must filter by organization_id") == "security"
    assert classify_error("Dangerous SQL operation detected: DROP is not allowed") == "security"
    assert classify_error("no such table: gifts") == "runtime"
    assert classify_error("database is locked") == "unknown"

    print("✅ SQL error classification passed")


# =============================================================================
# Assistant tools
# =============================================================================


def test_assistant_tools(db, gifts, other_donor):
    tools = {t.name: t for t in create_donor_tools(ORG_ID, 7, PHONE, db=db)}

    assert set(tools) == {
        "find_donors", "get_donor_details", "get_donation_history", "get_donor_statistics",
        "get_top_donors", "flexible_query", "execute_sql", "add_donor_note",
        "analyze_donors", "ask_clarification",
    }

    found = tools["find_donors"].invoke({"name": "John"})
    assert found[0]["last_donation_date"] == "2024-06-01 00:00:00", "Dates are serialized as text"
    assert tools["get_donor_details"].invoke({"donor_id": other_donor.id}) == {
        "error": f"Donor {other_donor.id} not found"
    }
    bogus = tools["flexible_query"].invoke({"query_type": "bogus"})
    assert "donor-project-history" in bogus[0]["allowed_query_types"]

    note = tools["add_donor_note"].invoke({"donor_id": gifts.id, "note_content": " Prefers email "})
    assert note["success"] is True
    assert note["total_notes"] == 1
    assert tools["add_donor_note"].invoke({"donor_id": other_donor.id, "note_content": "x"})["success"] is False

    clarification = tools["ask_clarification"].invoke({"question": "Which John?", "context": "Two donors match"})
    assert clarification == {"clarification_asked": True, "question": "Which John?", "context": "Two donors match"}

    logged = activities(db, "db_query_executed")
    assert len(logged) == 4, "Lookups, note writes and clarifications are logged, rejected query types are not"
    assert all(a.staff_id == 7 and a.organization_id == ORG_ID for a in logged)

    print("✅ Assistant tools passed")


@pytest.mark.asyncio
async def test_analyze_donors_tool(db, gifts, other_donor):
    llm = FakeListChatModel(responses=["John gave twice to General, most recently in June."])
    analyze = {t.name: t for t in create_donor_tools(ORG_ID, 7, PHONE, db=db, llm=llm)}["analyze_donors"]

    result = await analyze.ainvoke({"donor_ids": [gifts.id, other_donor.id], "question": "How has John given?"})
    assert result["success"] is True
    assert result["analysis"] == "John gave twice to General, most recently in June."
    assert result["donors_analyzed"] == 1, "Donors of other organizations are skipped"

    missing = await analyze.ainvoke({"donor_ids": [424242], "question": "Who is this?"})
    assert missing == {"success": False, "error": "No valid donor data found for the provided IDs"}

    assert len(activities(db, "db_query_executed")) == 2

    print("✅ Donor analysis tool passed")


def test_donor_history_profile(db, gifts):
    history = WhatsAppDonorAnalysisService(db).fetch_donor_history(gifts.id, ORG_ID)
    profile = format_donor_history(history)

    assert profile.startswith(f"=== Donor Profile: John Smith (ID {gifts.id}) ===")
    assert "- Total Donated: $75.00" in profile
    assert "- Number of Donations: 2" in profile
    assert "- Last Donation: 06/01/2024" in profile
    assert "- 06/01/2024: $25.00 to General" in profile
    assert WhatsAppDonorAnalysisService(db).fetch_donor_history(gifts.id, OTHER_ORG_ID) is None

    print("✅ Donor history profile passed")


def test_execute_sql_tool_retries(db, donor):
    execute_sql = {t.name: t for t in create_donor_tools(ORG_ID, 7, PHONE, db=db)}["execute_sql"]

    rows = execute_sql.invoke({"query": f"SELECT email FROM donors WHERE organization_id = '{ORG_ID}'"})
    assert rows == [{"email": "john@example.com"}]

    feedback = execute_sql.invoke({"query": "SELECT * FROM donors"})
    assert feedback["error"] is True
    assert feedback["retry_attempt"] == 1
    assert "Failed Query: SELECT * FROM donors" in feedback["feedback"]

    with pytest.raises(ValueError) as exc:
        execute_sql.invoke({"query": "SELECT * FROM donors", "retry_attempt": 2})
    assert str(exc.value).startswith("SQL query failed after 3 attempts")
    assert len(activities(db, "error_occurred")) == 2

    print("✅ SQL tool retries passed")


# =============================================================================
# AI service
# =============================================================================


def test_summarize_agent_messages():
    messages = [
        AIMessage(content="", tool_calls=[{"name": "find_donors", "args": {"name": "John"}, "id": "call_1"}],
                  usage_metadata={"input_tokens": 10, "output_tokens": 2, "total_tokens": 12}),
        ToolMessage(content='[{"id": 1}]', tool_call_id="call_1", name="find_donors"),
        AIMessage(content=" John gave $75. ",
                  usage_metadata={"input_tokens": 20, "output_tokens": 5, "total_tokens": 25}),
    ]

    summary = summarize_agent_messages(messages)

    assert summary["response"] == "John gave $75."
    assert summary["tool_calls"] == [{"id": "call_1", "tool_name": "find_donors", "args": {"name": "John"}}]
    assert summary["tool_results"][0]["result"] == '[{"id": 1}]'
    assert summary["usage"].total_tokens == 37

    print("✅ Agent message summary passed")


class FakeAgent:
    def __init__(self, reply):
        self.reply = reply
        self.inputs = []

    async def ainvoke(self, inputs):
        self.inputs.append(inputs)
        return {"messages": list(inputs["messages"]) + [self.reply]}


@pytest.fixture
def stub_agent(monkeypatch):
    created = {}

    def install(reply):
        agent = FakeAgent(reply)

        def fake_create_react_agent(llm, tools, prompt=None):
            created["tools"] = [t.name for t in tools]
            created["prompt"] = prompt
            return agent

        monkeypatch.setattr(ai_service_module, "create_react_agent", fake_create_react_agent)
        return agent

    clear_system_prompt_cache()
    yield install, created
    clear_system_prompt_cache()


@pytest.mark.asyncio
async def test_ai_service_answers_and_records(db, org, staff, stub_agent):
    install, created = stub_agent
    agent = install(AIMessage(content="John Smith gave $50 in total.",
                              usage_metadata={"input_tokens": 30, "output_tokens": 8, "total_tokens": 38}))
    service = WhatsAppAIService(db, llm=FakeListChatModel(responses=["unused"]),
                                deduplicator=MessageDeduplicator(window_seconds=300))

    first = await service.process_message("How much did John give?", ORG_ID, staff.id, PHONE, message_id="wamid.1")
    await service.process_message("And last year?", ORG_ID, staff.id, PHONE)

    assert first == {
        "response": "John Smith gave $50 in total.",
        "tokens_used": {"prompt_tokens": 30, "completion_tokens": 8, "total_tokens": 38},
    }
    assert "- Name: Hope Shelter" in created["prompt"]
    assert "execute_sql" in created["tools"]

    first_prompt = agent.inputs[0]["messages"][0].content
    second_prompt = agent.inputs[1]["messages"][0].content
    assert first_prompt == "User question: How much did John give?", "The current message is not history"
    assert second_prompt == (
        "Previous conversation:\nUser: How much did John give?\n\n"
        "Assistant: John Smith gave $50 in total.\n\n"
        "Current user question: And last year?"
    )

    stored = db.query(WhatsAppChatMessage).order_by(WhatsAppChatMessage.id).all()
    assert [m.role for m in stored] == ["user", "assistant", "user", "assistant"]
    assert stored[0].message_id == "wamid.1"
    assert stored[1].tokens_used["total_tokens"] == 38
    assert len(activities(db, "ai_response_generated")) == 2

    print("✅ AI service passed")


@pytest.mark.asyncio
async def test_ai_service_empty_answer_raises(db, org, staff, stub_agent):
    install, _ = stub_agent
    install(AIMessage(content=""))
    service = WhatsAppAIService(db, llm=FakeListChatModel(responses=["unused"]),
                                deduplicator=MessageDeduplicator(window_seconds=300))

    with pytest.raises(ValueError) as exc:
        await service.process_message("Hello?", ORG_ID, staff.id, PHONE, is_transcribed=True)

    assert str(exc.value) == EMPTY_RESPONSE_ERROR
    assert [m.role for m in db.query(WhatsAppChatMessage).all()] == ["user"]

    print("✅ Empty AI answer passed")


class ToolCallingChatModel(FakeMessagesListChatModel):
    """Scripted model that accepts the agent's tools."""

    def bind_tools(self, tools, **kwargs):
        return self


@pytest.mark.asyncio
async def test_ai_service_runs_agent_tools(db, org, staff, donor):
    clear_system_prompt_cache()
    llm = ToolCallingChatModel(responses=[
        AIMessage(content="", tool_calls=[{"name": "find_donors", "args": {"name": "John"}, "id": "call_1"}]),
        AIMessage(content="John Smith is in your donor list."),
    ])
    service = WhatsAppAIService(db, llm=llm, deduplicator=MessageDeduplicator(window_seconds=300))

    result = await service.process_message("Do we have a donor called John?", ORG_ID, staff.id, PHONE)

    assert result["response"] == "John Smith is in your donor list."
    stored = db.query(WhatsAppChatMessage).filter(WhatsAppChatMessage.role == "assistant").one()
    assert stored.tool_calls == [{"id": "call_1", "tool_name": "find_donors", "args": {"name": "John"}}]
    assert stored.tool_results[0]["tool_name"] == "find_donors"
    assert stored.tool_results[0]["tool_call_id"] == "call_1"
    assert "Smith" in stored.tool_results[0]["result"], "The tool ran against the database"
    assert len(activities(db, "db_query_executed")) == 1

    clear_system_prompt_cache()
    print("✅ AI service agent run passed")


# =============================================================================
# Webhook
# =============================================================================


class FakeMessagingClient:
    def __init__(self, audio=b"ogg-bytes"):
        self.sent = []
        self.audio = audio

    async def send_text(self, phone_number_id, to, body):
        self.sent.append((phone_number_id, to, body))
        return {"messages": [{"id": "wamid.out"}]}

    async def download_audio(self, media_id):
        if self.audio is None:
            raise WhatsAppAPIError("Failed to download media: 404 Not Found")
        return self.audio


class FakeTranscriber:
    async def transcribe(self, audio_bytes, filename="audio.ogg", language="en"):
        return "Who are our top donors?"


class FakeAIService:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def process_message(self, message, organization_id, staff_id, from_phone_number,
                              is_transcribed=False, message_id=None):
        self.calls.append({"message": message, "is_transcribed": is_transcribed, "message_id": message_id})
        if self.error:
            raise self.error
        return {"response": f"Answer: {message}", "tokens_used": {"total_tokens": 9}}


def webhook_payload(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {
            "metadata": {"phone_number_id": PHONE_NUMBER_ID},
            "messages": list(messages),
        }}]}],
    }


def text_message(body, sender="15551234567", message_id="wamid.in"):
    return {"from": sender, "id": message_id, "type": "text", "text": {"body": body}}


@pytest.fixture
def registered_staff(db, staff):
    WhatsAppPermissionService(db).add_phone_number_to_staff(staff.id, PHONE)
    return staff


def make_handler(db, ai=None, messaging=None):
    return WhatsAppWebhookHandler(
        db=db,
        ai_service=ai or FakeAIService(),
        messaging_client=messaging or FakeMessagingClient(),
        transcriber=FakeTranscriber(),
    )


@pytest.mark.asyncio
async def test_webhook_text_message(db, registered_staff):
    handler = make_handler(db)

    processed = await handler.handle_webhook(webhook_payload(text_message("How much did John give?")))

    assert processed == 1
    assert handler.ai_service.calls == [
        {"message": "How much did John give?", "is_transcribed": False, "message_id": "wamid.in"}
    ]
    assert handler.messaging_client.sent == [(PHONE_NUMBER_ID, "15551234567", "Answer: How much did John give?")]
    assert len(activities(db, "message_received")) == 1
    assert activities(db, "message_sent")[0].staff_id == registered_staff.id

    print("✅ Webhook text message passed")


@pytest.mark.asyncio
async def test_webhook_voice_message(db, registered_staff, monkeypatch):
    reported = []
    monkeypatch.setattr(whatsapp_webhook, "capture_exception", lambda error, context: reported.append(context))
    handler = make_handler(db)
    voice = {"from": "15551234567", "id": "wamid.v", "type": "audio", "audio": {"id": "media_1"}}

    await handler.handle_webhook(webhook_payload(voice))

    assert handler.ai_service.calls[0]["message"] == "Who are our top donors?"
    assert handler.ai_service.calls[0]["is_transcribed"] is True
    assert activities(db, "voice_transcribed")[0].data["audio_id"] == "media_1"

    failing = make_handler(db, messaging=FakeMessagingClient(audio=None))
    await failing.handle_webhook(webhook_payload(voice))
    assert failing.messaging_client.sent[-1][2] == VOICE_FAILURE_REPLY
    assert failing.ai_service.calls == []
    assert reported == [{"phone": "15551234567", "organization_id": ORG_ID}], "Voice failures are reported"
    assert activities(db, "error_occurred")[0].data["context"] == "voice_message_processing"

    print("✅ Webhook voice message passed")


@pytest.mark.asyncio
async def test_webhook_denies_unknown_numbers(db, registered_staff):
    handler = make_handler(db)

    await handler.handle_webhook(webhook_payload(text_message("Show me donors", sender="15559999999")))

    assert handler.messaging_client.sent == [(PHONE_NUMBER_ID, "15559999999", PERMISSION_DENIED_REPLY)]
    assert handler.ai_service.calls == []
    denied = activities(db, "permission_denied")[0]
    assert denied.data["attempted_message"] == "Show me donors"
    assert denied.data["reason"] == NOT_REGISTERED

    print("✅ Webhook permission denial passed")


@pytest.mark.asyncio
async def test_webhook_unsupported_and_invalid(db, registered_staff):
    handler = make_handler(db)

    await handler.handle_webhook(webhook_payload({"from": "15551234567", "id": "wamid.i", "type": "image"}))
    assert handler.messaging_client.sent[-1][2] == UNSUPPORTED_REPLY

    with pytest.raises(InvalidWebhookObject):
        await handler.handle_webhook({"object": "page", "entry": []})

    status_only = {"object": "whatsapp_business_account", "entry": [{"changes": [{"value": {"statuses": []}}]}]}
    assert await handler.handle_webhook(status_only) == 0

    print("✅ Webhook unsupported and invalid payloads passed")


@pytest.mark.asyncio
async def test_webhook_text_errors_propagate(db, registered_staff):
    handler = make_handler(db, ai=FakeAIService(error=ValueError("model unavailable")))

    with pytest.raises(ValueError):
        await handler.handle_webhook(webhook_payload(text_message("Hi")))

    error = activities(db, "error_occurred")[0]
    assert error.data["context"] == "text_message_processing"
    assert handler.messaging_client.sent == []

    print("✅ Webhook error propagation passed")


def test_webhook_signature(db):
    import hashlib
    import hmac

    handler = make_handler(db)
    body = b'{"object": "whatsapp_business_account"}'

    handler.settings = SimpleNamespace(whatsapp_app_secret=None)
    assert handler.verify_signature(body, "sha256=abc") is False, "No secret means no valid signature"

    handler.settings = SimpleNamespace(whatsapp_app_secret="secret")
    digest = hmac.new(b"secret", body, hashlib.sha256).hexdigest()
    assert handler.verify_signature(body, f"sha256={digest}") is True
    assert handler.verify_signature(body + b" ", f"sha256={digest}") is False
    assert handler.verify_signature(body, "") is False

    print("✅ Webhook signature passed")


# =============================================================================
# Clients
# =============================================================================


@pytest.mark.asyncio
async def test_messaging_client():
    requests = []

    def handler(request):
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"messages": [{"id": "wamid.out"}]})
        if request.url.path.endswith("/media_1"):
            return httpx.Response(200, json={"url": "https://lookaside.example.com/audio/1"})
        if request.url.host == "lookaside.example.com":
            return httpx.Response(200, content=b"ogg-bytes")
        return httpx.Response(404)

    client = WhatsAppMessagingClient(access_token="token", transport=httpx.MockTransport(handler))

    sent = await client.send_text(PHONE_NUMBER_ID, "15551234567", "Hello")
    audio = await client.download_audio("media_1")

    assert sent["messages"][0]["id"] == "wamid.out"
    assert requests[0].url.path.endswith(f"/{PHONE_NUMBER_ID}/messages")
    assert requests[0].headers["Authorization"] == "Bearer token"
    assert audio == b"ogg-bytes"

    with pytest.raises(WhatsAppAPIError):
        await client.download_audio("missing")
    await client.close()

    print("✅ Messaging client passed")


class FakeTranscriptions:
    def __init__(self):
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return "  Who gave the most this year? \n"


@pytest.mark.asyncio
async def test_voice_transcriber():
    transcriptions = FakeTranscriptions()
    openai_client = SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions))
    transcriber = VoiceTranscriber(client=openai_client, model="whisper-1")

    text = await transcriber.transcribe(b"ogg-bytes", "voice_1.ogg")

    assert text == "Who gave the most this year?"
    assert transcriptions.calls[0]["file"] == ("voice_1.ogg", b"ogg-bytes")
    assert transcriptions.calls[0]["model"] == "whisper-1"
    assert transcriptions.calls[0]["response_format"] == "text"

    print("✅ Voice transcriber passed")
