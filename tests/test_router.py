from datetime import datetime

import pytest

from helpdesk.context import ContextSigner
from helpdesk.response import (
    NO_TICKETS, STATUS_LOOKUP_FAILED, TICKET_CREATE_FAILED,
    TICKET_OFFER_DEPARTMENT, TICKET_OFFER_FAQ, TICKET_OFFER_NEED,
)
from helpdesk.router import MessageRouter


def test_greeting_by_time_of_day(catalog, store, completion):
    for hour, word in ((9, "Good morning"), (14, "Good afternoon"), (20, "Good evening")):
        r = MessageRouter(catalog, store, completion, clock=lambda h=hour: datetime(2025, 1, 1, h, 0))
        reply = r.route("hello", "student1")
        assert reply.text.startswith(word + "!"), hour
        assert reply.action is None
        assert reply.stage == "greeting"


def test_message_is_trimmed(router):
    assert router.route("   hi   ", "student1").stage == "greeting"


def test_reply_shape(router):
    out = router.route("hi", "student1").to_dict()
    assert set(out) == {"text", "action", "ticket", "tickets"}


def test_department_info(router):
    reply = router.route("Where can I get my transcript?", "student1")
    assert reply.action == "department_info"
    assert "**Registrar's Office**" in reply.text
    assert "📍 **Location:** Admin Building, Room 101" in reply.text
    assert "📧 **Email:** registrar@university.edu" in reply.text
    assert "📞 **Phone:** (02) 8123-4567" in reply.text
    assert reply.conversation_context is None


def test_department_without_contact_lines(router):
    reply = router.route("where do I pay tuition", "student1")
    assert "**Cashier's Office**" in reply.text
    assert "📧" not in reply.text
    assert "📞" not in reply.text


def test_department_request_makes_offer(router):
    reply = router.route("Where do I request a transcript?", "student1")
    assert reply.action == "ticket_offer"
    assert reply.text.endswith(TICKET_OFFER_DEPARTMENT)
    assert reply.conversation_context == {
        "originalMessage": "Where do I request a transcript?",
        "category": "OTR Request",
    }


def test_faq_answer(router):
    reply = router.route("How long is transcript processing?", "student1")
    assert reply.stage == "faq"
    assert reply.text == "Transcripts take 5 to 7 working days to process."
    assert reply.action is None


def test_faq_with_request_cue_makes_offer(router):
    reply = router.route("I want to know about transcript processing", "student1")
    assert reply.text == "Transcripts take 5 to 7 working days to process." + TICKET_OFFER_FAQ
    assert reply.action == "ticket_offer"
    assert reply.conversation_context["category"] == "OTR Request"


def test_faq_inquiry_is_not_a_request_cue(router):
    reply = router.route("inquiry about office hours", "student1")
    assert reply.stage == "faq"
    assert reply.action is None


def test_status_without_tickets(router):
    reply = router.route("show my tickets", "student1")
    assert reply.text == NO_TICKETS
    assert reply.action is None


def test_status_lists_newest_first(router, make_ticket):
    first = make_ticket(title="First request")
    second = make_ticket(title="Second request")
    make_ticket(user_id="student2", title="Someone else's")
    reply = router.route("show my tickets", "student1")
    assert reply.action == "ticket_status"
    assert [t["ticketNumber"] for t in reply.tickets] == [second["ticketNumber"], first["ticketNumber"]]
    assert reply.text.startswith("I found 2 tickets in your account:")
    assert "Showing most recent" not in reply.text


def test_status_list_is_capped(router, make_ticket):
    for i in range(12):
        make_ticket(title=f"Request number {i}")
    reply = router.route("my tickets", "student1")
    assert len(reply.tickets) == 10
    assert "(Showing most recent 10 tickets" in reply.text


def test_status_by_ticket_number(router, make_ticket):
    ticket = make_ticket(title="Diploma request")
    reply = router.route(f"ticket status {ticket['ticketNumber'].lower()}", "student1")
    assert reply.action == "ticket_status"
    assert len(reply.tickets) == 1
    assert reply.tickets[0] == {
        "id": ticket["id"],
        "ticketNumber": ticket["ticketNumber"],
        "title": "Diploma request",
        "status": "Pending",
        "priority": "Normal",
        "category": "General Inquiry",
    }
    assert f"**Ticket #{ticket['ticketNumber']}**" in reply.text


def test_status_shows_resolution(router, store, make_ticket):
    ticket = make_ticket()
    store.update_status(ticket["id"], "Completed", actor_id="admin1", remarks="Ready for pickup")
    reply = router.route(f"check ticket {ticket['ticketNumber']}", "student1")
    assert "✅ Resolution: Ready for pickup" in reply.text


def test_status_of_someone_elses_ticket(router, make_ticket):
    ticket = make_ticket(user_id="student2")
    reply = router.route(f"status of {ticket['ticketNumber']}", "student1")
    assert reply.text.startswith(f"I couldn't find a ticket with number #{ticket['ticketNumber']}")
    assert reply.tickets is None


def test_status_lookup_failure(catalog, completion, morning):
    class BrokenStore:
        def list_user_tickets(self, *a, **kw):
            raise RuntimeError("database is locked")

    r = MessageRouter(catalog, BrokenStore(), completion, clock=morning)
    assert r.route("my tickets", "student1").text == STATUS_LOOKUP_FAILED


def test_ticket_need_offer(router):
    reply = router.route("I have a problem with my scholarship", "student1")
    assert reply.text == TICKET_OFFER_NEED
    assert reply.action == "ticket_offer"
    assert reply.conversation_context == {
        "originalMessage": "I have a problem with my scholarship",
        "category": "Scholarship",
    }


def test_offer_then_confirm_creates_ticket(router, store):
    offer = router.route("I need 2 copies of my transcript, purpose: job application", "student1")
    assert offer.action == "ticket_offer"
    reply = router.route("yes", "student1", offer.conversation_context)
    assert reply.action == "ticket_created"
    assert set(reply.ticket) == {"id", "ticketNumber", "title"}
    assert f"(#{reply.ticket['ticketNumber']})" in reply.text

    saved = store.get_ticket(reply.ticket["id"])
    assert saved["title"] == "I need 2 copies of my transcript, purpose: job application"
    assert saved["category"] == "OTR Request"
    assert saved["status"] == "Pending"
    assert saved["createdBy"]["id"] == "student1"
    assert saved["requestDetails"] == {"numberOfCopies": 2, "purpose": "job application"}


def test_confirm_infers_urgent_priority(router, store):
    ctx = {"originalMessage": "I need my diploma urgent please", "category": "Document Request"}
    reply = router.route("create ticket", "student1", ctx)
    assert store.get_ticket(reply.ticket["id"])["priority"] == "Urgent"


def test_confirm_without_context_pads_fields(router, store):
    reply = router.route("yes", "student1")
    saved = store.get_ticket(reply.ticket["id"])
    assert saved["title"] == "Request from chatbot: yes"
    assert saved["description"] == "yes (Created via chatbot)"
    assert saved["category"] == "General Inquiry"


def test_confirm_recomputes_unknown_category(router, store):
    ctx = {"originalMessage": "I need help with tuition payment", "category": "Free Money"}
    reply = router.route("ok", "student1", ctx)
    assert store.get_ticket(reply.ticket["id"])["category"] == "Tuition Payment"


def test_confirm_creation_failure(router):
    reply = router.route("yes", "no-such-user", {"originalMessage": "I need my transcript"})
    assert reply.text == TICKET_CREATE_FAILED
    assert reply.action is None


def test_signed_context_roundtrip(catalog, store, completion, morning):
    r = MessageRouter(catalog, store, completion, clock=morning, signer=ContextSigner("s3cret"))
    offer = r.route("I have a problem with my scholarship", "student1")
    assert "signature" in offer.conversation_context
    reply = r.route("yes", "student1", offer.conversation_context)
    assert store.get_ticket(reply.ticket["id"])["category"] == "Scholarship"


@pytest.mark.parametrize("tamper", [
    lambda ctx: {k: v for k, v in ctx.items() if k != "signature"},
    lambda ctx: {**ctx, "originalMessage": "I need a diploma"},
])
def test_tampered_context_is_ignored(catalog, store, completion, morning, tamper):
    r = MessageRouter(catalog, store, completion, clock=morning, signer=ContextSigner("s3cret"))
    offer = r.route("I have a problem with my scholarship", "student1")
    reply = r.route("yes", "student1", tamper(offer.conversation_context))
    assert store.get_ticket(reply.ticket["id"])["title"] == "Request from chatbot: yes"


def test_context_signed_for_another_user_is_ignored(catalog, store, completion, morning):
    r = MessageRouter(catalog, store, completion, clock=morning, signer=ContextSigner("s3cret"))
    offer = r.route("I have a problem with my scholarship", "student2")
    reply = r.route("yes", "student1", offer.conversation_context)
    assert store.get_ticket(reply.ticket["id"])["category"] == "General Inquiry"


def test_fallback_uses_completion(router, completion):
    reply = router.route("What is the meaning of life", "student1")
    assert reply.stage == "fallback"
    assert reply.text == "The registrar can help with that."
    assert reply.action is None
    system_prompt, user_message = completion.calls[0]
    assert user_message == "What is the meaning of life"
    assert "Registrar's Office: Admin Building, Room 101" in system_prompt


def test_stage_order_greeting_beats_request(router):
    assert router.route("hello, I need a transcript", "student1").stage == "greeting"


def test_otr_context_details(router, store):
    ctx = {"originalMessage": "I need an OTR, 2 copies, purpose: job application", "category": "OTR Request"}
    reply = router.route("yes", "student1", ctx)
    details = store.get_ticket(reply.ticket["id"])["requestDetails"]
    assert details["numberOfCopies"] == 2
    assert details["purpose"] == "job application"


def test_coe_location_versus_request(store, completion, morning):
    from helpdesk.catalog import Catalog, DepartmentEntry
    cat = Catalog(departments=(
        DepartmentEntry(name="Registrar's Office", location="Room 101", hours="8-5", services=("coe",)),
    ))
    r = MessageRouter(cat, store, completion, clock=morning)
    assert r.route("where can I get my COE", "student1").action == "department_info"
    offer = r.route("I need to get my COE", "student1")
    assert offer.action == "ticket_offer"
    assert offer.conversation_context["originalMessage"] == "I need to get my COE"
    assert offer.conversation_context["category"] == "Document Request"


def test_unknown_canonical_number(router):
    reply = router.route("check ticket TICKET-20240101-ABC", "student1")
    assert "#TICKET-20240101-ABC" in reply.text
    assert reply.text.startswith("I couldn't find")
    assert reply.action is None


def test_show_ticket_truncates(router, make_ticket):
    for i in range(12):
        make_ticket(title=f"Request number {i}")
    reply = router.route("show ticket", "student1")
    assert len(reply.tickets) == 10
    assert "Showing most recent 10 tickets" in reply.text


def test_greeting_is_deterministic(router):
    assert router.route("hello", "student1").text == router.route("hello", "student2").text


@pytest.mark.parametrize("message", [
    "check ticket TICKET-20240101-ABC",
    "what is my ticket status",
    "where is my ticket",
    "show ticket",
    "ticket progress please",
])
def test_status_phrases_reach_status_stage_with_bundled_catalog(store, completion, morning, message):
    from helpdesk.catalog import load_catalog
    r = MessageRouter(load_catalog(), store, completion, clock=morning)
    reply = r.route(message, "student1")
    assert reply.stage == "ticket_status"
    if "TICKET-20240101-ABC" in message:
        assert reply.text.startswith("I couldn't find a ticket with number #TICKET-20240101-ABC")
    else:
        assert reply.text == NO_TICKETS
