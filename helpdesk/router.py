from __future__ import annotations
import json, logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .catalog import Catalog, DepartmentEntry, FAQEntry
from .context import ContextSigner
from .intents import (
    DEPARTMENT_REQUEST_CUES, FAQ_REQUEST_CUES, TICKET_NEED_CUES,
    contains_any, detect_category, extract_ticket_number, find_department,
    is_confirmation, is_greeting, is_status_inquiry, match_faq,
)
from .llm import CompletionClient, build_system_prompt
from .preprocess import extract_ticket_info
from .response import (
    NO_TICKETS, STATUS_LIST_CAP, STATUS_LOOKUP_FAILED, TICKET_CREATE_FAILED,
    TICKET_OFFER_DEPARTMENT, TICKET_OFFER_FAQ, TICKET_OFFER_NEED,
    department_text, greeting_text, snippet, ticket_created_text, ticket_detail_text,
    ticket_list_text, ticket_not_found_text, ticket_summary,
)
from .tickets import CATEGORIES, TicketStore

logger = logging.getLogger("registrar.router")

def log_json(**kwargs):
    logger.info(json.dumps(kwargs, ensure_ascii=False))

@dataclass(frozen=True)
class Utterance:
    text: str
    user_id: str
    context: Optional[Dict[str, Any]] = None

@dataclass
class Reply:
    text: str
    action: Optional[str] = None
    ticket: Optional[Dict[str, Any]] = None
    tickets: Optional[List[Dict[str, Any]]] = None
    conversation_context: Optional[Dict[str, Any]] = None
    stage: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        out = {"text": self.text, "action": self.action, "ticket": self.ticket, "tickets": self.tickets}
        if self.conversation_context is not None:
            out["conversationContext"] = self.conversation_context
        return out

@dataclass(frozen=True)
class Stage:
    name: str
    predicate: Callable[[Utterance], Any]
    handler: Callable[[Utterance, Any], Reply]

class MessageRouter:
    """Routes one chat message through the intent stages; the first stage whose
    predicate matches produces the reply.

    Stages, in order: greeting, confirmation, department lookup, FAQ,
    ticket status, implicit ticket need, completion fallback.
    """
    def __init__(
        self,
        catalog: Catalog,
        store: TicketStore,
        completion: CompletionClient,
        clock: Callable[[], datetime] = datetime.now,
        signer: Optional[ContextSigner] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.completion = completion
        self.clock = clock
        self.signer = signer
        self.system_prompt = build_system_prompt(catalog)
        self.stages: List[Stage] = [
            Stage("greeting", lambda u: is_greeting(u.text), self._greeting),
            Stage("confirmation", lambda u: is_confirmation(u.text), self._confirmation),
            Stage("department", lambda u: find_department(u.text, self.catalog), self._department),
            Stage("faq", lambda u: match_faq(u.text, self.catalog), self._faq),
            Stage("ticket_status", lambda u: is_status_inquiry(u.text), self._ticket_status),
            Stage("ticket_need", lambda u: contains_any(u.text, TICKET_NEED_CUES), self._ticket_need),
            Stage("fallback", lambda u: True, self._fallback),
        ]

    def route(self, message: str, user_id: str, conversation_context: Optional[Dict[str, Any]] = None) -> Reply:
        utt = Utterance(text=(message or "").strip(), user_id=user_id, context=conversation_context)
        for stage in self.stages:
            match = stage.predicate(utt)
            if match:
                reply = stage.handler(utt, match)
                reply.stage = stage.name
                log_json(event="chat_reply", user_id=user_id, stage=stage.name, action=reply.action)
                return reply
        raise RuntimeError("no routing stage matched")

    # -------- Helpers --------
    def _offer_context(self, utt: Utterance) -> Dict[str, Any]:
        ctx = {"originalMessage": utt.text, "category": detect_category(utt.text)}
        return self.signer.sign(utt.user_id, ctx) if self.signer else ctx

    def _trusted_context(self, utt: Utterance) -> Optional[Dict[str, Any]]:
        ctx = utt.context
        if not ctx or not ctx.get("originalMessage"):
            return None
        if self.signer and not self.signer.verify(utt.user_id, ctx):
            logger.warning(json.dumps({"event": "context_rejected", "user_id": utt.user_id}))
            return None
        return ctx

    # -------- Stages --------
    def _greeting(self, utt: Utterance, _match) -> Reply:
        return Reply(text=greeting_text(self.clock()))

    def _confirmation(self, utt: Utterance, _match) -> Reply:
        ctx = self._trusted_context(utt)
        if ctx:
            source = ctx["originalMessage"]
            category = ctx.get("category")
            if category not in CATEGORIES:
                category = detect_category(source)
        else:
            source = utt.text
            category = detect_category(source)
        info = extract_ticket_info(source, category)
        try:
            ticket = self.store.create_from_chat(info, utt.user_id)
        except Exception:
            logger.exception("ticket creation from chat failed")
            return Reply(text=TICKET_CREATE_FAILED)
        log_json(event="ticket_created", user_id=utt.user_id, ticket_number=ticket["ticketNumber"],
                 category=ticket["category"], priority=ticket["priority"], source="chatbot")
        return Reply(
            text=ticket_created_text(ticket),
            action="ticket_created",
            ticket={"id": ticket["id"], "ticketNumber": ticket["ticketNumber"], "title": ticket["title"]},
        )

    def _department(self, utt: Utterance, dept: DepartmentEntry) -> Reply:
        reply = Reply(text=department_text(dept), action="department_info")
        if contains_any(utt.text, DEPARTMENT_REQUEST_CUES):
            reply.text += TICKET_OFFER_DEPARTMENT
            reply.action = "ticket_offer"
            reply.conversation_context = self._offer_context(utt)
        return reply

    def _faq(self, utt: Utterance, faq: FAQEntry) -> Reply:
        reply = Reply(text=faq.answer)
        if contains_any(utt.text, FAQ_REQUEST_CUES):
            reply.text += TICKET_OFFER_FAQ
            reply.action = "ticket_offer"
            reply.conversation_context = self._offer_context(utt)
        return reply

    def _ticket_status(self, utt: Utterance, _match) -> Reply:
        number = extract_ticket_number(utt.text)
        try:
            tickets = self.store.list_user_tickets(utt.user_id, ticket_number=number, limit=STATUS_LIST_CAP)
        except Exception:
            logger.exception("ticket status lookup failed")
            return Reply(text=STATUS_LOOKUP_FAILED)
        if not tickets:
            return Reply(text=ticket_not_found_text(number) if number else NO_TICKETS)
        if number and len(tickets) == 1:
            text = ticket_detail_text(tickets[0])
        else:
            text = ticket_list_text(tickets)
        return Reply(text=text, action="ticket_status", tickets=[ticket_summary(t) for t in tickets])

    def _ticket_need(self, utt: Utterance, _match) -> Reply:
        return Reply(text=TICKET_OFFER_NEED, action="ticket_offer", conversation_context=self._offer_context(utt))

    def _fallback(self, utt: Utterance, _match) -> Reply:
        log_json(event="completion_fallback", user_id=utt.user_id, message=snippet(utt.text, 80))
        return Reply(text=self.completion.complete(self.system_prompt, utt.text).strip())
