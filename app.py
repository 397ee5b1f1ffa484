from __future__ import annotations
import json, logging
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpdesk.catalog import load_catalog
from helpdesk.config import (
    AUTO_PROVISION_USERS, CONTEXT_SECRET, DEBUG, HELPDESK_API_KEY, LOG_LEVEL,
    MAX_BODY_KB, RATE_LIMIT_PER_MIN, REDIS_URL,
)
from helpdesk.context import get_context_signer
from helpdesk.llm import get_completion_client
from helpdesk.middleware import BodySizeLimitMiddleware, JsonLogger, RateLimiter, RequestContextMiddleware
from helpdesk.response import snippet
from helpdesk.router import MessageRouter
from helpdesk.schemas import (
    AssignRequest, ChatMessageRequest, CommentRequest, Priority, Status,
    StatusUpdateRequest, TicketCreateRequest,
)
from helpdesk.tickets import TicketNotFound, TicketValidationError, get_ticket_store, pages_for

logger = logging.getLogger("registrar")
logging.basicConfig(level=LOG_LEVEL, format="%(message)s")

def log_json(**kwargs):
    logger.info(json.dumps(kwargs, ensure_ascii=False))

app = FastAPI(title="Registrar Helpdesk API", version="1.0.0")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.add_middleware(RequestContextMiddleware, logger=JsonLogger())
app.add_middleware(BodySizeLimitMiddleware, max_bytes=MAX_BODY_KB * 1024)

store = get_ticket_store()
catalog = load_catalog()
chatbot = MessageRouter(
    catalog=catalog,
    store=store,
    completion=get_completion_client(),
    signer=get_context_signer(CONTEXT_SECRET),
)

# Per-identity rate limiter (Redis-backed if available, otherwise in-memory)
limiter = RateLimiter(per_minute=RATE_LIMIT_PER_MIN, redis_url=REDIS_URL)

# -------- Error envelopes --------
def _field(loc) -> str:
    return ".".join(str(p) for p in loc if p not in ("body", "query", "path", "header"))

@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = [{"field": _field(e.get("loc", ())), "message": e.get("msg", "")} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"success": False, "message": "Validation failed", "errors": errors})

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail},
                        headers=getattr(exc, "headers", None))

@app.exception_handler(TicketValidationError)
async def ticket_validation_error(request: Request, exc: TicketValidationError):
    return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})

@app.exception_handler(TicketNotFound)
async def ticket_not_found(request: Request, exc: TicketNotFound):
    return JSONResponse(status_code=404, content={"success": False, "message": str(exc)})

@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    body = {"success": False, "message": "Error processing message"}
    if DEBUG:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)

# -------- Identity --------
def require_api_key(x_api_key: Optional[str]):
    if HELPDESK_API_KEY and x_api_key != HELPDESK_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")

def current_user(x_api_key: Optional[str] = Header(None), x_user_id: Optional[str] = Header(None)) -> Dict[str, Any]:
    require_api_key(x_api_key)
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = store.get_user(user_id)
    if user is None:
        if not AUTO_PROVISION_USERS:
            raise HTTPException(status_code=401, detail="Unknown user")
        user = store.upsert_user(user_id, role="student")
        log_json(event="user_provisioned", user_id=user_id)
    return user

def require_admin(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    return user

# -------- Public --------
@app.get("/", response_class=HTMLResponse)
def home():
    return """
    <html><body style='font-family:system-ui;margin:2rem'>
      <h2>Registrar Helpdesk API is running</h2>
      <p>Open <a href='/docs'>/docs</a> for the interactive API docs.</p>
      <p>The dashboard lives in <code>streamlit run streamlit_app.py</code>.</p>
    </body></html>
    """

@app.get("/health")
def health():
    return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}

# -------- Chatbot --------
@app.post("/api/chatbot/message")
def chatbot_message(req: ChatMessageRequest, user: Dict[str, Any] = Depends(current_user)):
    limiter.check(user["id"])
    ctx = req.conversation_context.model_dump(by_alias=True, exclude_none=True) if req.conversation_context else None
    log_json(event="chat_request", user_id=user["id"], has_context=ctx is not None, message=snippet(req.message, 80))
    reply = chatbot.route(req.message, user["id"], ctx)
    return {"success": True, "data": reply.to_dict()}

# -------- User tickets --------
@app.post("/api/tickets", status_code=201)
def create_ticket(req: TicketCreateRequest, user: Dict[str, Any] = Depends(current_user)):
    details = req.request_details.model_dump(by_alias=True, exclude_none=True) if req.request_details else {}
    ticket = store.create_ticket(
        user_id=user["id"],
        title=req.title,
        description=req.description,
        category=req.category,
        priority=req.priority,
        request_details=details,
    )
    log_json(event="ticket_created", user_id=user["id"], ticket_number=ticket["ticketNumber"],
             category=ticket["category"], priority=ticket["priority"], source="form")
    return {"success": True, "message": "Ticket created successfully", "data": {"ticket": ticket}}

@app.get("/api/tickets")
def my_tickets(
    status: Optional[Status] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Dict[str, Any] = Depends(current_user),
):
    tickets = store.list_user_tickets(user["id"], status=status, limit=limit, offset=(page - 1) * limit)
    total = store.count_user_tickets(user["id"], status=status)
    return {
        "success": True,
        "data": {
            "tickets": tickets,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": pages_for(total, limit)},
        },
    }

@app.get("/api/tickets/{ticket_id}")
def my_ticket(ticket_id: str, user: Dict[str, Any] = Depends(current_user)):
    ticket = store.get_ticket(ticket_id)
    if not ticket or ticket["createdBy"]["id"] != user["id"]:
        raise HTTPException(status_code=404, detail="Ticket not found")
    comments = store.list_comments(ticket["id"], include_internal=False)
    return {"success": True, "data": {"ticket": ticket, "comments": comments}}

# -------- Admin --------
@app.get("/api/admin/tickets")
def admin_tickets(
    status: Optional[Status] = Query(None),
    category: Optional[str] = Query(None, max_length=100),
    priority: Optional[Priority] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: Literal["createdAt", "updatedAt", "priority", "status"] = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    admin: Dict[str, Any] = Depends(require_admin),
):
    tickets, total = store.search_tickets(
        status=status,
        category=(category or "").strip() or None,
        priority=priority,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {
        "success": True,
        "data": {
            "tickets": tickets,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": pages_for(total, limit)},
        },
    }

@app.get("/api/admin/tickets/{ticket_id}")
def admin_ticket(ticket_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    ticket = store.get_ticket(ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return {"success": True, "data": {"ticket": ticket, "comments": store.list_comments(ticket["id"])}}

@app.put("/api/admin/tickets/{ticket_id}/status")
def admin_update_status(ticket_id: str, req: StatusUpdateRequest, admin: Dict[str, Any] = Depends(require_admin)):
    ticket = store.update_status(ticket_id, req.status, actor_id=admin["id"], remarks=req.remarks)
    log_json(event="status_updated", admin_id=admin["id"], ticket_number=ticket["ticketNumber"], status=req.status)
    return {"success": True, "message": "Ticket status updated successfully", "data": {"ticket": ticket}}

@app.put("/api/admin/tickets/{ticket_id}/assign")
def admin_assign(ticket_id: str, req: AssignRequest, admin: Dict[str, Any] = Depends(require_admin)):
    ticket = store.assign_ticket(ticket_id, req.assignee_id or admin["id"])
    log_json(event="ticket_assigned", admin_id=admin["id"], ticket_number=ticket["ticketNumber"],
             assignee=ticket["assignedTo"]["id"])
    return {"success": True, "message": "Ticket assigned successfully", "data": {"ticket": ticket}}

@app.post("/api/admin/tickets/{ticket_id}/comments")
def admin_add_comment(ticket_id: str, req: CommentRequest, admin: Dict[str, Any] = Depends(require_admin)):
    ticket = store.get_ticket(ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    comment = store.add_comment(ticket["id"], admin["id"], req.content, is_internal=req.is_internal)
    return {"success": True, "message": "Remark added successfully", "data": {"comment": comment}}

@app.get("/api/admin/statistics")
def admin_statistics(admin: Dict[str, Any] = Depends(require_admin)):
    return {"success": True, "data": {"statistics": store.statistics()}}
