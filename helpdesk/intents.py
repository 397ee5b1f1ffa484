from __future__ import annotations
import re
from typing import Iterable, Optional, Tuple

from .catalog import Catalog, DepartmentEntry, FAQEntry

GREETING_RE = re.compile(
    r"^(hi|hello|hey|greetings|good morning|good afternoon|good evening|good day)"
    r"|^(hi there|hello there|hey there)"
)

CONFIRMATIONS = {"yes", "y", "ok", "okay", "sure", "create", "create ticket"}
CONFIRMATION_PHRASES = ("yes, create", "yes create")

LOCATION_CUES = ("where", "location", "find", "get", "obtain", "available", "can i get", "how to get")

# Request cues differ per stage
DEPARTMENT_REQUEST_CUES = ("request", "need", "want", "apply", "create", "submit", "help with", "inquiry")
FAQ_REQUEST_CUES = ("request", "need", "want", "apply", "create", "submit", "help with")
TICKET_NEED_CUES = (
    "request", "need", "want", "apply", "create", "submit",
    "help with", "assistance", "issue", "problem",
)

STATUS_PHRASES = (
    "ticket status", "check ticket", "my tickets", "status of", "ticket number",
    "view ticket", "show ticket", "what is my ticket", "where is my ticket",
    "ticket update", "ticket progress", "ticket information", "my ticket info",
)

TICKET_NUMBER_RE = re.compile(r"TICKET-[\dA-Z-]+", re.IGNORECASE)
# "#ABC" is explicit; a bare "ticket" word needs a digit or dash after it
LOOSE_TICKET_NUMBER_RE = re.compile(r"#\s*([A-Z0-9-]+)|ticket\s*([A-Z0-9-]+)", re.IGNORECASE)

# Declaration order is the tie-break: first category with any hit wins.
CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("OTR Request", ("otr", "transcript", "official transcript", "records", "tor")),
    ("Subject Enrollment", ("enroll", "enrollment", "add subject", "register subject", "drop subject", "withdraw subject")),
    ("Grade Inquiry", ("grade", "grades", "check grade", "view grade", "question about grade")),
    ("Document Request", ("document", "certificate", "diploma", "coe", "certificate of enrollment")),
    ("Enrollment", ("enrollment", "enroll", "change course", "shift course")),
    ("Scholarship", ("scholarship", "financial aid", "grant")),
    ("Financial Aid", ("financial aid", "assistance", "help with payment")),
    ("Tuition Payment", ("tuition", "payment", "pay", "fee")),
    ("Academic Complaint", ("complaint", "grievance", "issue", "problem")),
    ("General Inquiry", ("inquiry", "question", "help", "information")),
)
DEFAULT_CATEGORY = "General Inquiry"

def _norm(text: str) -> str:
    return (text or "").lower().strip()

def contains_any(text: str, cues: Iterable[str]) -> bool:
    t = (text or "").lower()
    return any(c in t for c in cues)

def is_greeting(text: str) -> bool:
    return bool(GREETING_RE.match(_norm(text)))

def is_confirmation(text: str) -> bool:
    t = _norm(text)
    return t in CONFIRMATIONS or any(p in t for p in CONFIRMATION_PHRASES)

def is_location_inquiry(text: str) -> bool:
    return contains_any(text, LOCATION_CUES)

def is_status_inquiry(text: str) -> bool:
    return contains_any(text, STATUS_PHRASES)

def detect_category(text: str) -> str:
    t = (text or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in t for k in keywords):
            return category
    return DEFAULT_CATEGORY

def extract_ticket_number(text: str) -> Optional[str]:
    m = TICKET_NUMBER_RE.search(text or "")
    if m:
        return m.group(0).upper()
    for m in LOOSE_TICKET_NUMBER_RE.finditer(text or ""):
        marked, worded = m.group(1), m.group(2)
        if marked:
            return marked.upper()
        # "ticket status" or "my tickets" must not read as a ticket number
        if any(ch.isdigit() or ch == "-" for ch in worded):
            return worded.upper()
    return None

def find_department(text: str, catalog: Catalog) -> Optional[DepartmentEntry]:
    """First department (catalog order) offering a service named in the text."""
    if not catalog.departments or not is_location_inquiry(text):
        return None
    t = (text or "").lower()
    for dept in catalog.departments:
        if any(s.lower() in t for s in dept.services):
            return dept
    return None

def _faq_matches(faq: FAQEntry, t: str) -> bool:
    if any(k.lower() in t for k in faq.keywords):
        return True
    words = faq.question.lower().split()
    return any(w in t for w in words if len(w) > 3)

def match_faq(text: str, catalog: Catalog) -> Optional[FAQEntry]:
    t = (text or "").lower()
    for faq in catalog.faqs:
        if _faq_matches(faq, t):
            return faq
    return None
