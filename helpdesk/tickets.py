from __future__ import annotations
import json, math, os, sqlite3, time, uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import DB_PATH

CATEGORIES = [
    "OTR Request", "Subject Enrollment", "Grade Inquiry", "Document Request",
    "Enrollment", "Scholarship", "Financial Aid", "Tuition Payment",
    "Academic Complaint", "Course Evaluation", "Library", "General Inquiry",
    "Technical Support", "Other",
]
PRIORITIES = ["Low", "Normal", "High", "Urgent"]
STATUSES = ["Pending", "In Review", "Approved", "Rejected", "Completed", "Cancelled", "On Hold"]
ROLES = ["student", "admin"]

TITLE_MIN, TITLE_MAX = 5, 200
DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 5000

SORT_COLUMNS = {
    "createdAt": "t.created_ts",
    "updatedAt": "t.updated_ts",
    "status": "t.status",
    "priority": "CASE t.priority WHEN 'Low' THEN 0 WHEN 'Normal' THEN 1 WHEN 'High' THEN 2 WHEN 'Urgent' THEN 3 END",
}
# request detail values admin search looks at; keys and other fields never match
SEARCHABLE_DETAILS = ("subjectCode", "subjectName", "studentId", "course")

SCHEMA = """
CREATE TABLE IF NOT EXISTS users(
    id TEXT PRIMARY KEY,
    username TEXT,
    email TEXT,
    first_name TEXT,
    last_name TEXT,
    role TEXT NOT NULL DEFAULT 'student',
    created_ts REAL
);
CREATE TABLE IF NOT EXISTS tickets(
    id TEXT PRIMARY KEY,
    ticket_number TEXT UNIQUE NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    category TEXT NOT NULL,
    priority TEXT NOT NULL,
    status TEXT NOT NULL,
    created_by TEXT NOT NULL REFERENCES users(id),
    assigned_to TEXT REFERENCES users(id),
    request_details TEXT,
    resolution TEXT,
    created_ts REAL NOT NULL,
    updated_ts REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tickets_creator ON tickets(created_by, created_ts);
CREATE TABLE IF NOT EXISTS ticket_comments(
    id TEXT PRIMARY KEY,
    ticket_id TEXT NOT NULL REFERENCES tickets(id),
    author_id TEXT REFERENCES users(id),
    content TEXT NOT NULL,
    is_internal INTEGER NOT NULL DEFAULT 0,
    is_system_note INTEGER NOT NULL DEFAULT 0,
    created_ts REAL NOT NULL
);
"""

class TicketValidationError(ValueError):
    pass

class TicketNotFound(LookupError):
    pass

def new_ticket_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"TICKET-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"

def iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()

def validate_ticket_fields(title: str, description: str, category: str, priority: str, status: str):
    if not TITLE_MIN <= len(title or "") <= TITLE_MAX:
        raise TicketValidationError(f"Title must be between {TITLE_MIN} and {TITLE_MAX} characters")
    if not DESCRIPTION_MIN <= len(description or "") <= DESCRIPTION_MAX:
        raise TicketValidationError(f"Description must be between {DESCRIPTION_MIN} and {DESCRIPTION_MAX} characters")
    if category not in CATEGORIES:
        raise TicketValidationError(f"Invalid category: {category}")
    if priority not in PRIORITIES:
        raise TicketValidationError(f"Invalid priority: {priority}")
    if status not in STATUSES:
        raise TicketValidationError(f"Invalid status: {status}")

def _months_ago(dt: datetime, n: int) -> datetime:
    month = dt.month - n
    year = dt.year
    while month < 1:
        month += 12
        year -= 1
    return dt.replace(year=year, month=month, day=min(dt.day, 28))

class TicketStore:
    """SQLite-backed users, tickets and ticket comments.

    Every call opens its own connection, so one store can be shared across
    request threads. There is no application-level locking.
    """
    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        parent = os.path.dirname(db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with self._conn() as c:
            c.executescript(SCHEMA)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    # -------- Users --------
    def upsert_user(
        self,
        user_id: str,
        username: Optional[str] = None,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: str = "student",
    ) -> Dict[str, Any]:
        if role not in ROLES:
            raise TicketValidationError(f"Invalid role: {role}")
        with self._conn() as c:
            c.execute(
                """INSERT INTO users(id,username,email,first_name,last_name,role,created_ts) VALUES(?,?,?,?,?,?,?)
                   ON CONFLICT(id) DO UPDATE SET username=excluded.username, email=excluded.email,
                   first_name=excluded.first_name, last_name=excluded.last_name, role=excluded.role""",
                (user_id, username or user_id, email, first_name, last_name, role, time.time()),
            )
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._conn() as c:
            row = c.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
        if not row:
            return None
        return {**self._user_ref(row), "role": row["role"]}

    @staticmethod
    def _user_ref(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "username": row["username"],
            "email": row["email"],
            "firstName": row["first_name"],
            "lastName": row["last_name"],
        }

    def _resolve_user(self, c: sqlite3.Connection, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not user_id:
            return None
        row = c.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
        return self._user_ref(row) if row else {"id": user_id}

    def _ticket_dict(self, c: sqlite3.Connection, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "ticketNumber": row["ticket_number"],
            "title": row["title"],
            "description": row["description"],
            "category": row["category"],
            "priority": row["priority"],
            "status": row["status"],
            "createdBy": self._resolve_user(c, row["created_by"]),
            "assignedTo": self._resolve_user(c, row["assigned_to"]),
            "requestDetails": json_loads(row["request_details"]),
            "resolution": json_loads(row["resolution"]) or None,
            "createdAt": iso(row["created_ts"]),
            "updatedAt": iso(row["updated_ts"]),
        }

    # -------- Tickets --------
    def create_ticket(
        self,
        user_id: str,
        title: str,
        description: str,
        category: str = "General Inquiry",
        priority: str = "Normal",
        request_details: Optional[Dict[str, Any]] = None,
        status: str = "Pending",
    ) -> Dict[str, Any]:
        validate_ticket_fields(title, description, category, priority, status)
        ticket_id = uuid.uuid4().hex
        now = time.time()
        with self._conn() as c:
            if not c.execute("SELECT 1 FROM users WHERE id=?", (user_id,)).fetchone():
                raise TicketNotFound(f"Unknown user: {user_id}")
            c.execute(
                "INSERT INTO tickets(id,ticket_number,title,description,category,priority,status,created_by,assigned_to,request_details,resolution,created_ts,updated_ts) "
                "VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?)",
                (ticket_id, new_ticket_number(), title, description, category, priority, status,
                 user_id, None, json_dumps(request_details or {}), None, now, now),
            )
            row = c.execute("SELECT * FROM tickets WHERE id=?", (ticket_id,)).fetchone()
            return self._ticket_dict(c, row)

    def create_from_chat(self, info: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        """Create a ticket from chatbot-extracted fields.

        Titles and descriptions are clamped and padded so the store's length
        constraints always hold; anything else the store rejects propagates.
        """
        title = (info.get("title") or "Chatbot Request")[:TITLE_MAX]
        description = (info.get("description") or info.get("title") or "Request created via chatbot")[:DESCRIPTION_MAX]
        if len(title) < TITLE_MIN:
            title = "Request from chatbot: " + title
        if len(description) < DESCRIPTION_MIN:
            description = description + " (Created via chatbot)"
        return self.create_ticket(
            user_id=user_id,
            title=title,
            description=description,
            category=info.get("category") or "General Inquiry",
            priority=info.get("priority") or "Normal",
            request_details=info.get("requestDetails") or {},
            status="Pending",
        )

    def get_ticket(self, ticket_id: str) -> Optional[Dict[str, Any]]:
        with self._conn() as c:
            row = c.execute("SELECT * FROM tickets WHERE id=? OR ticket_number=?", (ticket_id, ticket_id)).fetchone()
            return self._ticket_dict(c, row) if row else None

    def list_user_tickets(
        self,
        user_id: str,
        ticket_number: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        where, params = ["created_by=?"], [user_id]
        if ticket_number:
            where.append("ticket_number=?")
            params.append(ticket_number)
        if status:
            where.append("status=?")
            params.append(status)
        sql = f"SELECT * FROM tickets WHERE {' AND '.join(where)} ORDER BY created_ts DESC, rowid DESC LIMIT ? OFFSET ?"
        with self._conn() as c:
            rows = c.execute(sql, (*params, limit, offset)).fetchall()
            return [self._ticket_dict(c, r) for r in rows]

    def count_user_tickets(self, user_id: str, status: Optional[str] = None) -> int:
        sql, params = "SELECT COUNT(*) FROM tickets WHERE created_by=?", [user_id]
        if status:
            sql += " AND status=?"
            params.append(status)
        with self._conn() as c:
            return int(c.execute(sql, params).fetchone()[0])

    def search_tickets(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> Tuple[List[Dict[str, Any]], int]:
        where, params = [], []
        for col, val in (("status", status), ("category", category), ("priority", priority)):
            if val:
                where.append(f"t.{col}=?")
                params.append(val)
        if search and search.strip():
            needle = search.strip().lower()
            cols = ["t.title", "t.description", "t.ticket_number"] + [
                f"coalesce(json_extract(t.request_details, '$.{field}'), '')" for field in SEARCHABLE_DETAILS
            ]
            where.append("(" + " OR ".join(f"instr(lower({col}), ?) > 0" for col in cols) + ")")
            params.extend([needle] * len(cols))
        clause = f"WHERE {' AND '.join(where)}" if where else ""
        order = SORT_COLUMNS.get(sort_by, SORT_COLUMNS["createdAt"])
        direction = "ASC" if sort_order == "asc" else "DESC"
        offset = (max(page, 1) - 1) * limit
        with self._conn() as c:
            total = int(c.execute(f"SELECT COUNT(*) FROM tickets t {clause}", params).fetchone()[0])
            rows = c.execute(
                f"SELECT t.* FROM tickets t {clause} ORDER BY {order} {direction}, t.rowid {direction} LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return [self._ticket_dict(c, r) for r in rows], total

    def update_status(self, ticket_id: str, status: str, actor_id: str, remarks: Optional[str] = None) -> Dict[str, Any]:
        if status not in STATUSES:
            raise TicketValidationError(f"Invalid status: {status}")
        ticket = self.get_ticket(ticket_id)
        if not ticket:
            raise TicketNotFound(f"Ticket not found: {ticket_id}")
        old_status = ticket["status"]
        remarks = (remarks or "").strip()
        resolution = ticket["resolution"] or {}
        if status == "Completed" and remarks:
            resolution = {**resolution, "resolutionNotes": remarks}
        # status, remark and audit note commit together or not at all
        with self._conn() as c:
            c.execute(
                "UPDATE tickets SET status=?, resolution=?, updated_ts=? WHERE id=?",
                (status, json_dumps(resolution) if resolution else None, time.time(), ticket["id"]),
            )
            if remarks:
                self._insert_comment(c, ticket["id"], actor_id, remarks)
            self._insert_comment(
                c, ticket["id"], actor_id, f'Status changed from "{old_status}" to "{status}" by admin',
                is_system_note=True,
            )
        return self.get_ticket(ticket["id"])

    def set_resolution(
        self,
        ticket_id: str,
        rejection_reason: Optional[str] = None,
        resolution_notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        ticket = self.get_ticket(ticket_id)
        if not ticket:
            raise TicketNotFound(f"Ticket not found: {ticket_id}")
        resolution = dict(ticket["resolution"] or {})
        if rejection_reason:
            resolution["rejectionReason"] = rejection_reason
        if resolution_notes:
            resolution["resolutionNotes"] = resolution_notes
        with self._conn() as c:
            c.execute("UPDATE tickets SET resolution=?, updated_ts=? WHERE id=?",
                      (json_dumps(resolution), time.time(), ticket["id"]))
        return self.get_ticket(ticket["id"])

    def assign_ticket(self, ticket_id: str, assignee_id: str) -> Dict[str, Any]:
        ticket = self.get_ticket(ticket_id)
        if not ticket:
            raise TicketNotFound(f"Ticket not found: {ticket_id}")
        if not self.get_user(assignee_id):
            raise TicketNotFound(f"Unknown user: {assignee_id}")
        with self._conn() as c:
            c.execute("UPDATE tickets SET assigned_to=?, updated_ts=? WHERE id=?",
                      (assignee_id, time.time(), ticket["id"]))
        return self.get_ticket(ticket["id"])

    # -------- Comments --------
    def _insert_comment(
        self,
        c: sqlite3.Connection,
        ticket_id: str,
        author_id: Optional[str],
        content: str,
        is_internal: bool = False,
        is_system_note: bool = False,
    ) -> Dict[str, Any]:
        comment_id = uuid.uuid4().hex
        now = time.time()
        c.execute(
            "INSERT INTO ticket_comments(id,ticket_id,author_id,content,is_internal,is_system_note,created_ts) VALUES(?,?,?,?,?,?,?)",
            (comment_id, ticket_id, author_id, content, int(is_internal), int(is_system_note), now),
        )
        return {
            "id": comment_id,
            "ticketId": ticket_id,
            "author": self._resolve_user(c, author_id),
            "content": content,
            "isInternal": bool(is_internal),
            "isSystemNote": bool(is_system_note),
            "createdAt": iso(now),
        }

    def add_comment(
        self,
        ticket_id: str,
        author_id: Optional[str],
        content: str,
        is_internal: bool = False,
        is_system_note: bool = False,
    ) -> Dict[str, Any]:
        with self._conn() as c:
            if not c.execute("SELECT 1 FROM tickets WHERE id=?", (ticket_id,)).fetchone():
                raise TicketNotFound(f"Ticket not found: {ticket_id}")
            return self._insert_comment(c, ticket_id, author_id, content, is_internal, is_system_note)

    def list_comments(self, ticket_id: str, include_internal: bool = True) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM ticket_comments WHERE ticket_id=?"
        if not include_internal:
            sql += " AND is_internal=0"
        sql += " ORDER BY created_ts ASC, rowid ASC"
        with self._conn() as c:
            rows = c.execute(sql, (ticket_id,)).fetchall()
            return [
                {
                    "id": r["id"],
                    "ticketId": r["ticket_id"],
                    "author": self._resolve_user(c, r["author_id"]),
                    "content": r["content"],
                    "isInternal": bool(r["is_internal"]),
                    "isSystemNote": bool(r["is_system_note"]),
                    "createdAt": iso(r["created_ts"]),
                }
                for r in rows
            ]

    # -------- Reporting --------
    def statistics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        since_day = (now - timedelta(days=30)).timestamp()
        since_month = _months_ago(now, 6).timestamp()

        def grouped(c, column: str):
            rows = c.execute(
                f"SELECT {column} AS name, COUNT(*) AS n FROM tickets WHERE {column} IS NOT NULL "
                f"GROUP BY {column} ORDER BY n DESC, name ASC"
            ).fetchall()
            return [{"name": str(r["name"]), "value": int(r["n"])} for r in rows]

        def bucketed(c, fmt: str, since: float, key: str):
            rows = c.execute(
                f"SELECT strftime('{fmt}', created_ts, 'unixepoch') AS bucket, COUNT(*) AS n "
                "FROM tickets WHERE created_ts >= ? GROUP BY bucket ORDER BY bucket ASC",
                (since,),
            ).fetchall()
            return [{key: r["bucket"], "count": int(r["n"])} for r in rows if r["bucket"]]

        with self._conn() as c:
            total = int(c.execute("SELECT COUNT(*) FROM tickets").fetchone()[0])
            by_status = grouped(c, "status")
            counts = {s["name"]: s["value"] for s in by_status}
            return {
                "total": total,
                "pending": counts.get("Pending", 0),
                "inReview": counts.get("In Review", 0),
                "completed": counts.get("Completed", 0),
                "approved": counts.get("Approved", 0),
                "rejected": counts.get("Rejected", 0),
                "cancelled": counts.get("Cancelled", 0),
                "onHold": counts.get("On Hold", 0),
                "byCategory": grouped(c, "category"),
                "byPriority": grouped(c, "priority"),
                "byStatus": by_status,
                "ticketsByDate": bucketed(c, "%Y-%m-%d", since_day, "date"),
                "ticketsByMonth": bucketed(c, "%Y-%m", since_month, "month"),
            }

def pages_for(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0

def get_ticket_store(db_path: str = DB_PATH) -> TicketStore:
    return TicketStore(db_path)

def json_dumps(x) -> str:
    return json.dumps(x, ensure_ascii=False)

def json_loads(s: Optional[str]):
    try:
        return json.loads(s or "{}")
    except (TypeError, ValueError):
        return {}
