from __future__ import annotations
import re
from typing import Any, Dict

COPIES_RE = re.compile(r"(\d+)\s*(copy|copies)", re.IGNORECASE)
PURPOSE_RE = re.compile(r"purpose[:\s]+(.+?)(?:\.|$)", re.IGNORECASE)
SUBJECT_CODE_RE = re.compile(r"(?:subject\s+code|code)[:\s]+([A-Z0-9]+)", re.IGNORECASE)
SUBJECT_NAME_RE = re.compile(r"(?:subject|course)[:\s]+([A-Za-z\s]+?)(?:\.|$)", re.IGNORECASE)

TITLE_CHARS = 100

def infer_priority(text: str) -> str:
    t = (text or "").lower()
    if any(k in t for k in ["urgent", "asap", "immediately"]):
        return "Urgent"
    if any(k in t for k in ["important", "soon"]):
        return "High"
    return "Normal"

def extract_request_details(text: str, category: str) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    if category == "OTR Request":
        m = COPIES_RE.search(text)
        if m:
            details["numberOfCopies"] = int(m.group(1))
        m = PURPOSE_RE.search(text)
        if m:
            details["purpose"] = m.group(1).strip()
    elif category == "Subject Enrollment":
        m = SUBJECT_CODE_RE.search(text)
        if m:
            details["subjectCode"] = m.group(1).upper()
        m = SUBJECT_NAME_RE.search(text)
        if m:
            details["subjectName"] = m.group(1).strip()
    return details

def extract_ticket_info(text: str, category: str) -> Dict[str, Any]:
    text = text or ""
    return {
        "title": text[:TITLE_CHARS],
        "description": text,
        "category": category,
        "priority": infer_priority(text),
        "requestDetails": extract_request_details(text, category),
    }
