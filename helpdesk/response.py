from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from .catalog import DepartmentEntry

STATUS_LIST_CAP = 10

STATUS_EMOJI = {
    "Pending": "⏳",
    "In Review": "👀",
    "Approved": "✅",
    "Rejected": "❌",
    "Completed": "✔️",
    "Cancelled": "🚫",
    "On Hold": "⏸️",
}
PRIORITY_EMOJI = {"Low": "🟢", "Normal": "🟡", "High": "🟠", "Urgent": "🔴"}

TICKET_OFFER_DEPARTMENT = "\n\nWould you like me to create a ticket for this? Just reply \"yes\" or \"create ticket\" and I'll set it up for you."
TICKET_OFFER_FAQ = "\n\nWould you like me to create a ticket for this request? Just reply \"yes\" or \"create ticket\" and I'll set it up for you."
TICKET_OFFER_NEED = (
    "I understand you need help with that. I can create a ticket for your request so our staff can assist you.\n\n"
    "Would you like me to create a ticket? Just reply \"yes\" or \"create ticket\" and I'll set it up for you."
)
TICKET_CREATE_FAILED = (
    "I'm having trouble creating the ticket right now. Please try creating a ticket manually through the "
    "Tickets section, or let me know if you'd like to try again."
)
STATUS_LOOKUP_FAILED = (
    "I'm having trouble retrieving your ticket information right now. Please try again or check your "
    "tickets in the Tickets section."
)
NO_TICKETS = "I couldn't find any tickets in your account. Would you like to create a new ticket?"

def snippet(txt: str, n: int = 240) -> str:
    if not txt:
        return ""
    return txt[:n] + ("..." if len(txt) > n else "")

def greeting_text(now: datetime) -> str:
    if now.hour < 12:
        greeting = "Good morning"
    elif now.hour < 18:
        greeting = "Good afternoon"
    else:
        greeting = "Good evening"
    return (
        f"{greeting}! I'm the Registrar's Office AI assistant. How can I help you today? I can assist with:\n\n"
        "• Requesting documents (OTR, certificates, etc.)\n"
        "• Subject enrollment\n"
        "• Grade inquiries\n"
        "• Checking the status of your tickets\n"
        "• General questions\n\n"
        "Just ask me anything, and I'll help you create a ticket if needed!"
    )

def department_text(dept: DepartmentEntry) -> str:
    lines = [
        f"You can find that at the **{dept.name}**.\n",
        f"📍 **Location:** {dept.location}",
        f"🕐 **Hours:** {dept.hours}",
    ]
    if dept.contact:
        lines.append(f"📧 **Email:** {dept.contact}")
    if dept.phone:
        lines.append(f"📞 **Phone:** {dept.phone}")
    lines.append("\nWould you like me to create a ticket for this inquiry, or do you need more information?")
    return "\n".join(lines)

def ticket_created_text(ticket: Dict[str, Any]) -> str:
    return (
        f"Great! I've created a ticket (#{ticket['ticketNumber']}) for your request: \"{ticket['title']}\".\n\n"
        "Our staff will review it and respond within 1-2 business days. You can track your ticket status "
        "in the Tickets section.\n\nIs there anything else I can help you with?"
    )

def ticket_not_found_text(ticket_number: str) -> str:
    return (
        f"I couldn't find a ticket with number #{ticket_number} in your account. Please check the ticket "
        "number and try again, or ask me to show all your tickets."
    )

def _created(ticket: Dict[str, Any]) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(ticket.get("createdAt") or "")
    except ValueError:
        return None

def _assignee_name(ticket: Dict[str, Any]) -> Optional[str]:
    a = ticket.get("assignedTo")
    if not a:
        return None
    return a.get("firstName") or a.get("username") or a.get("id")

def ticket_detail_text(ticket: Dict[str, Any]) -> str:
    created = _created(ticket)
    lines = [
        "Here's the status of your ticket:\n",
        f"{STATUS_EMOJI.get(ticket['status'], '📋')} **Ticket #{ticket['ticketNumber']}**",
        f"📝 Title: {ticket['title']}",
        f"📊 Status: {ticket['status']}",
        f"{PRIORITY_EMOJI.get(ticket['priority'], '🟡')} Priority: {ticket['priority']}",
        f"📁 Category: {ticket['category']}",
        f"📅 Created: {created:%b} {created.day}, {created.year}" if created else "📅 Created: unknown",
    ]
    assignee = _assignee_name(ticket)
    if assignee:
        lines.append(f"👤 Assigned to: {assignee}")
    resolution = ticket.get("resolution") or {}
    if ticket["status"] == "Rejected" and resolution.get("rejectionReason"):
        lines.append(f"\n❌ Rejection Reason: {resolution['rejectionReason']}")
    if ticket["status"] == "Completed" and resolution.get("resolutionNotes"):
        lines.append(f"\n✅ Resolution: {resolution['resolutionNotes']}")
    lines.append("\nYou can view full details in the Tickets section.")
    return "\n".join(lines)

def ticket_list_text(tickets: List[Dict[str, Any]]) -> str:
    n = len(tickets)
    out = f"I found {n} ticket{'s' if n > 1 else ''} in your account:\n\n"
    for i, t in enumerate(tickets, 1):
        created = _created(t)
        day = f"{created:%b} {created.day}" if created else ""
        out += f"{i}. {STATUS_EMOJI.get(t['status'], '📋')} **#{t['ticketNumber']}** - {t['title']}\n"
        out += f"   Status: {t['status']} | Priority: {t['priority']} | {day}\n\n"
    if n >= STATUS_LIST_CAP:
        out += f"\n(Showing most recent {STATUS_LIST_CAP} tickets. View all tickets in the Tickets section.)"
    out += "\nWould you like to know more about a specific ticket? Just mention the ticket number!"
    return out

def ticket_summary(ticket: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": ticket["id"],
        "ticketNumber": ticket["ticketNumber"],
        "title": ticket["title"],
        "status": ticket["status"],
        "priority": ticket["priority"],
        "category": ticket["category"],
    }
