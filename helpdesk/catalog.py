from __future__ import annotations
import json, logging, os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .config import FAQ_PATH, DEPARTMENTS_PATH

logger = logging.getLogger("registrar.catalog")

@dataclass(frozen=True)
class FAQEntry:
    question: str
    keywords: Tuple[str, ...] = ()
    answer: str = ""

@dataclass(frozen=True)
class DepartmentEntry:
    name: str
    location: str
    hours: str
    contact: Optional[str] = None
    phone: Optional[str] = None
    services: Tuple[str, ...] = ()

@dataclass(frozen=True)
class Catalog:
    """Read-only FAQ and department data, loaded once and shared by every request."""
    faqs: Tuple[FAQEntry, ...] = field(default_factory=tuple)
    departments: Tuple[DepartmentEntry, ...] = field(default_factory=tuple)

    def department_context(self) -> str:
        if not self.departments:
            return ""
        lines = ["\n\nAvailable Departments and Services:"]
        for d in self.departments:
            if d.services:
                lines.append(f"- {d.name}: {d.location}. Services: {', '.join(d.services)}. Hours: {d.hours}.")
        return "\n".join(lines) + "\n"

def _read_json(path: str, root_key: str) -> list:
    if not os.path.exists(path):
        logger.warning(json.dumps({"event": "catalog_missing", "path": path}))
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(json.dumps({"event": "catalog_unreadable", "path": path, "error": str(e)}))
        return []
    rows = data.get(root_key) if isinstance(data, dict) else None
    return rows if isinstance(rows, list) else []

def _faq(row: Dict[str, Any]) -> Optional[FAQEntry]:
    if not isinstance(row, dict) or not row.get("question"):
        return None
    keywords = row.get("keywords") or []
    return FAQEntry(
        question=str(row["question"]),
        keywords=tuple(str(k) for k in keywords if k),
        answer=str(row.get("answer") or ""),
    )

def _department(row: Dict[str, Any]) -> Optional[DepartmentEntry]:
    if not isinstance(row, dict) or not row.get("name"):
        return None
    services = row.get("services")
    return DepartmentEntry(
        name=str(row["name"]),
        location=str(row.get("location") or ""),
        hours=str(row.get("hours") or ""),
        contact=row.get("contact") or None,
        phone=row.get("phone") or None,
        services=tuple(str(s) for s in services) if isinstance(services, list) else (),
    )

def load_catalog(faq_path: str = FAQ_PATH, departments_path: str = DEPARTMENTS_PATH) -> Catalog:
    """Missing or malformed files give an empty section, never an error."""
    faqs = tuple(e for e in (_faq(r) for r in _read_json(faq_path, "faqs")) if e)
    depts = tuple(e for e in (_department(r) for r in _read_json(departments_path, "departments")) if e)
    logger.info(json.dumps({"event": "catalog_loaded", "faqs": len(faqs), "departments": len(depts)}))
    return Catalog(faqs=faqs, departments=depts)
