import os
import tempfile
from datetime import datetime

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# helpdesk.config reads the environment at import time
_DATA_DIR = tempfile.mkdtemp(prefix="registrar-tests-")
os.environ["DATA_DIR"] = _DATA_DIR
os.environ["DB_PATH"] = os.path.join(_DATA_DIR, "helpdesk.db")
os.environ["CATALOG_DIR"] = os.path.join(ROOT, "data")
os.environ["REDIS_URL"] = ""
os.environ["LLM_BACKEND"] = "none"
os.environ.pop("HELPDESK_API_KEY", None)
os.environ.pop("CONTEXT_SECRET", None)

from helpdesk.catalog import Catalog, DepartmentEntry, FAQEntry
from helpdesk.router import MessageRouter
from helpdesk.tickets import TicketStore


class FakeCompletion:
    def __init__(self, text="  The registrar can help with that.  "):
        self.text = text
        self.calls = []

    def complete(self, system_prompt, user_message):
        self.calls.append((system_prompt, user_message))
        return self.text


@pytest.fixture
def catalog():
    return Catalog(
        faqs=(
            FAQEntry(
                question="Transcript processing",
                keywords=("transcript", "otr"),
                answer="Transcripts take 5 to 7 working days to process.",
            ),
            FAQEntry(
                question="Office hours",
                keywords=("office hours",),
                answer="We are open Monday to Friday, 8 AM to 5 PM.",
            ),
        ),
        departments=(
            DepartmentEntry(
                name="Registrar's Office",
                location="Admin Building, Room 101",
                hours="Mon-Fri 8:00 AM - 5:00 PM",
                contact="registrar@university.edu",
                phone="(02) 8123-4567",
                services=("transcript", "diploma"),
            ),
            DepartmentEntry(
                name="Cashier's Office",
                location="Admin Building, Room 105",
                hours="Mon-Fri 8:00 AM - 4:30 PM",
                services=("tuition", "payment"),
            ),
        ),
    )


@pytest.fixture
def store(tmp_path):
    s = TicketStore(str(tmp_path / "helpdesk.db"))
    s.upsert_user("student1", username="jdelacruz", first_name="Juan", last_name="Dela Cruz")
    s.upsert_user("student2", username="areyes", first_name="Ana", last_name="Reyes")
    s.upsert_user("admin1", username="registrar_admin", first_name="Maria", role="admin")
    return s


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def morning():
    return lambda: datetime(2025, 3, 10, 9, 30)


@pytest.fixture
def router(catalog, store, completion, morning):
    return MessageRouter(catalog=catalog, store=store, completion=completion, clock=morning)


@pytest.fixture
def make_ticket(store):
    def _make(user_id="student1", title="Request for transcript", description="I need my transcript for a job.", **kw):
        return store.create_ticket(user_id=user_id, title=title, description=description, **kw)
    return _make
