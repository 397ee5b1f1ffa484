"""
Streamlit UI for the Registrar Helpdesk

How to run (local):
1) Seed demo data (once):
   python scripts/seed_demo_data.py

2) Run Streamlit:
   streamlit run streamlit_app.py

Notes:
- This UI can run in two modes:
  (A) In-process mode (default): calls the message router and ticket store directly (no FastAPI required).
  (B) API mode: calls the FastAPI server (/api/chatbot/message, /api/tickets, /api/admin/...).
- Set HELPDESK_UI_MODE=api and HELPDESK_API_URL to use API mode.
"""

from __future__ import annotations

import json, os
from typing import Any, Dict, List, Optional

import streamlit as st

# ----------------------------
# Page config
# ----------------------------
st.set_page_config(
    page_title="Registrar Helpdesk",
    page_icon="🎓",
    layout="wide",
)

st.title("🎓 Registrar Helpdesk")
st.caption("Chat assistant + ticket tracking for the university registrar's office")


# ----------------------------
# Default settings
mode = "API" if os.environ.get("HELPDESK_UI_MODE", "").lower() == "api" else "In-process"
api_base_url = os.environ.get("HELPDESK_API_URL", "http://localhost:8000")
api_key = os.environ.get("HELPDESK_API_KEY", "")


# ----------------------------
# Lazy imports (after Streamlit init)
# ----------------------------
@st.cache_resource(show_spinner=False)
def get_store() -> Any:
    from helpdesk.tickets import get_ticket_store
    return get_ticket_store()

@st.cache_resource(show_spinner=False)
def get_router() -> Any:
    from helpdesk.catalog import load_catalog
    from helpdesk.config import CONTEXT_SECRET
    from helpdesk.context import get_context_signer
    from helpdesk.llm import get_completion_client
    from helpdesk.router import MessageRouter
    return MessageRouter(
        catalog=load_catalog(),
        store=get_store(),
        completion=get_completion_client(),
        signer=get_context_signer(CONTEXT_SECRET),
    )

def pretty_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2)

def _headers(user_id: str) -> Dict[str, str]:
    headers = {"Content-Type": "application/json", "X-User-Id": user_id}
    if api_key.strip():
        headers["X-API-Key"] = api_key.strip()
    return headers

def call_api(method: str, path: str, user_id: str, payload: Optional[Dict[str, Any]] = None,
             params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    import requests
    url = api_base_url.rstrip("/") + path
    r = requests.request(method, url, data=json.dumps(payload) if payload is not None else None,
                         params=params, headers=_headers(user_id), timeout=60)
    try:
        return r.json()
    except ValueError:
        return {"success": False, "message": "Non-JSON response", "status_code": r.status_code, "text": r.text}

def send_message(user_id: str, message: str, context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if mode == "API":
        payload: Dict[str, Any] = {"message": message}
        if context:
            payload["conversationContext"] = context
        out = call_api("POST", "/api/chatbot/message", user_id, payload)
        if not out.get("success"):
            return {"text": out.get("message") or "Request failed.", "action": None}
        return out["data"]
    store = get_store()
    if store.get_user(user_id) is None:
        store.upsert_user(user_id)
    return get_router().route(message, user_id, context).to_dict()

def my_tickets(user_id: str, status: Optional[str]) -> List[Dict[str, Any]]:
    if mode == "API":
        out = call_api("GET", "/api/tickets", user_id, params={"status": status, "limit": 100})
        return (out.get("data") or {}).get("tickets", [])
    return get_store().list_user_tickets(user_id, status=status, limit=100)

def admin_statistics(user_id: str) -> Dict[str, Any]:
    if mode == "API":
        out = call_api("GET", "/api/admin/statistics", user_id)
        if not out.get("success"):
            raise RuntimeError(out.get("message") or "Request failed")
        return out["data"]["statistics"]
    user = get_store().get_user(user_id)
    if not user or user["role"] != "admin":
        raise RuntimeError("Access denied. Admin privileges required.")
    return get_store().statistics()

def admin_tickets(user_id: str, filters: Dict[str, Any]) -> Dict[str, Any]:
    if mode == "API":
        out = call_api("GET", "/api/admin/tickets", user_id, params={k: v for k, v in filters.items() if v})
        if not out.get("success"):
            raise RuntimeError(out.get("message") or "Request failed")
        return out["data"]
    tickets, total = get_store().search_tickets(
        status=filters.get("status"),
        category=filters.get("category"),
        priority=filters.get("priority"),
        search=filters.get("search"),
        page=1,
        limit=filters.get("limit", 50),
        sort_by=filters.get("sortBy", "createdAt"),
        sort_order=filters.get("sortOrder", "desc"),
    )
    return {"tickets": tickets, "pagination": {"total": total}}

def admin_update_status(user_id: str, ticket_id: str, status: str, remarks: str) -> Dict[str, Any]:
    if mode == "API":
        return call_api("PUT", f"/api/admin/tickets/{ticket_id}/status", user_id,
                        {"status": status, "remarks": remarks or None})
    ticket = get_store().update_status(ticket_id, status, actor_id=user_id, remarks=remarks)
    return {"success": True, "data": {"ticket": ticket}}

def admin_add_comment(user_id: str, ticket_id: str, content: str, is_internal: bool) -> Dict[str, Any]:
    if mode == "API":
        return call_api("POST", f"/api/admin/tickets/{ticket_id}/comments", user_id,
                        {"content": content, "isInternal": is_internal})
    store = get_store()
    ticket = store.get_ticket(ticket_id)
    comment = store.add_comment(ticket["id"], user_id, content, is_internal=is_internal)
    return {"success": True, "data": {"comment": comment}}


# ----------------------------
# Shared state
# ----------------------------
if "user_id" not in st.session_state:
    st.session_state.user_id = "demo_student"
if "chat" not in st.session_state:
    st.session_state.chat = []
if "conversation_context" not in st.session_state:
    st.session_state.conversation_context = None

with st.sidebar:
    st.session_state.user_id = st.text_input("User ID", value=st.session_state.user_id)
    st.caption(f"Mode: **{mode}**")
    if st.button("Clear conversation"):
        st.session_state.chat = []
        st.session_state.conversation_context = None


# ----------------------------
# Tabs
# ----------------------------
tab_chat, tab_tickets, tab_admin = st.tabs(["💬 Chat", "🎫 My tickets", "🛡️ Admin dashboard"])

# ============================
# Tab: Chat
# ============================
with tab_chat:
    for turn in st.session_state.chat:
        with st.chat_message(turn["role"]):
            st.markdown(turn["text"])

    prompt = st.chat_input("Ask about transcripts, enrollment, grades, or your tickets…")
    if prompt:
        st.session_state.chat.append({"role": "user", "text": prompt})
        with st.chat_message("user"):
            st.markdown(prompt)
        with st.spinner("Thinking…"):
            reply = send_message(st.session_state.user_id, prompt, st.session_state.conversation_context)
        # Echo the offer context back on the next turn only
        st.session_state.conversation_context = reply.get("conversationContext")
        st.session_state.chat.append({"role": "assistant", "text": reply.get("text", "")})
        with st.chat_message("assistant"):
            st.markdown(reply.get("text", ""))
            if reply.get("action") == "ticket_created" and reply.get("ticket"):
                st.success(f"Ticket created: **{reply['ticket']['ticketNumber']}**")

# ============================
# Tab: My tickets
# ============================
with tab_tickets:
    st.subheader("My tickets")
    status_filter = st.selectbox(
        "Status",
        options=["", "Pending", "In Review", "Approved", "Rejected", "Completed", "Cancelled", "On Hold"],
        index=0,
    )
    tickets = my_tickets(st.session_state.user_id, status_filter or None)
    if not tickets:
        st.info("No tickets yet. Ask the assistant to create one for you.")
    for t in tickets:
        with st.expander(f"#{t['ticketNumber']} · {t['title']} · {t['status']}"):
            c1, c2, c3 = st.columns(3)
            c1.metric("Status", t["status"])
            c2.metric("Priority", t["priority"])
            c3.metric("Category", t["category"])
            st.write(t["description"])
            if t.get("requestDetails"):
                st.code(pretty_json(t["requestDetails"]))
            resolution = t.get("resolution") or {}
            if resolution.get("resolutionNotes"):
                st.success(f"Resolution: {resolution['resolutionNotes']}")
            if resolution.get("rejectionReason"):
                st.error(f"Rejection reason: {resolution['rejectionReason']}")

# ============================
# Tab: Admin dashboard
# ============================
with tab_admin:
    st.subheader("Admin dashboard")
    try:
        stats = admin_statistics(st.session_state.user_id)
    except RuntimeError as e:
        st.warning(str(e))
        stats = None

    if stats:
        m = st.columns(4)
        m[0].metric("Total", stats["total"])
        m[1].metric("Pending", stats["pending"])
        m[2].metric("In review", stats["inReview"])
        m[3].metric("Completed", stats["completed"])

        c1, c2 = st.columns(2)
        with c1:
            st.markdown("**By category**")
            if stats["byCategory"]:
                st.bar_chart(stats["byCategory"], x="name", y="value")
        with c2:
            st.markdown("**Tickets per day (last 30 days)**")
            if stats["ticketsByDate"]:
                st.line_chart(stats["ticketsByDate"], x="date", y="count")

        c3, c4, c5 = st.columns(3)
        with c3:
            st.markdown("**By priority**")
            if stats["byPriority"]:
                st.bar_chart(stats["byPriority"], x="name", y="value")
        with c4:
            st.markdown("**By status**")
            if stats["byStatus"]:
                st.bar_chart(stats["byStatus"], x="name", y="value")
        with c5:
            st.markdown("**Tickets per month (last 6 months)**")
            if stats["ticketsByMonth"]:
                st.bar_chart(stats["ticketsByMonth"], x="month", y="count")

        st.divider()
        f1, f2, f3, f4 = st.columns(4)
        with f1:
            f_status = st.selectbox("Filter status", ["", "Pending", "In Review", "Completed", "Approved", "Rejected", "Cancelled", "On Hold"])
        with f2:
            f_priority = st.selectbox("Filter priority", ["", "Low", "Normal", "High", "Urgent"])
        with f3:
            f_search = st.text_input("Search", value="")
        with f4:
            f_sort = st.selectbox("Sort by", ["createdAt", "updatedAt", "priority", "status"])

        data = admin_tickets(st.session_state.user_id, {
            "status": f_status or None,
            "priority": f_priority or None,
            "search": f_search or None,
            "sortBy": f_sort,
            "sortOrder": "desc",
            "limit": 50,
        })
        rows = data.get("tickets", [])
        st.caption(f"{data.get('pagination', {}).get('total', len(rows))} matching tickets")
        if rows:
            st.dataframe(
                [
                    {
                        "Ticket": t["ticketNumber"],
                        "Title": t["title"],
                        "Category": t["category"],
                        "Priority": t["priority"],
                        "Status": t["status"],
                        "Student": (t.get("createdBy") or {}).get("username"),
                        "Created": t["createdAt"],
                    }
                    for t in rows
                ],
                use_container_width=True,
                hide_index=True,
            )

            st.markdown("### Update status")
            with st.form("status_form"):
                pick = st.selectbox("Ticket", [t["ticketNumber"] for t in rows])
                new_status = st.selectbox("New status", ["Pending", "In Review", "Completed"])
                remarks = st.text_area("Remarks (visible to the student)", height=80)
                if st.form_submit_button("Update"):
                    out = admin_update_status(st.session_state.user_id, pick, new_status, remarks)
                    if out.get("success"):
                        st.success(f"Ticket {pick} is now {new_status}.")
                    else:
                        st.error("Update failed.")
                        st.code(pretty_json(out))

            st.markdown("### Add remark")
            with st.form("remark_form"):
                pick = st.selectbox("Ticket", [t["ticketNumber"] for t in rows], key="remark_ticket")
                content = st.text_area("Remark", height=80)
                internal = st.checkbox("Internal (hidden from the student)")
                if st.form_submit_button("Add remark") and content.strip():
                    out = admin_add_comment(st.session_state.user_id, pick, content.strip(), internal)
                    if out.get("success"):
                        st.success("Remark added.")
                    else:
                        st.error("Adding the remark failed.")
                        st.code(pretty_json(out))
