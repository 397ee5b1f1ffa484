import requests

from helpdesk.catalog import Catalog
from helpdesk.llm import (
    NO_CREDENTIALS_TEXT, SYSTEM_PROMPT, UNAVAILABLE_TEXT, DisabledCompletion, LLMConfig,
    LocalLLM, OpenAIChatCompletion, build_system_prompt, get_completion_client,
)


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def _client(session, api_key="sk-test"):
    cfg = LLMConfig(model_id="gpt-4o-mini", max_new_tokens=250, temperature=0.7, timeout=5.0)
    return OpenAIChatCompletion(api_key=api_key, base_url="https://llm.example/v1/", cfg=cfg, session=session)


def test_no_credentials_skips_request():
    session = FakeSession()
    assert _client(session, api_key=None).complete("sys", "hi") == NO_CREDENTIALS_TEXT
    assert session.calls == []


def test_successful_completion():
    session = FakeSession(FakeResponse({"choices": [{"message": {"content": "  Visit Room 101.  "}}]}))
    assert _client(session).complete("system text", "where is the registrar") == "Visit Room 101."
    call = session.calls[0]
    assert call["url"] == "https://llm.example/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["timeout"] == 5.0
    assert call["json"]["model"] == "gpt-4o-mini"
    assert call["json"]["max_tokens"] == 250
    assert call["json"]["temperature"] == 0.7
    assert call["json"]["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "where is the registrar"},
    ]


def test_transport_error_degrades():
    session = FakeSession(error=requests.ConnectionError("refused"))
    assert _client(session).complete("sys", "hi") == UNAVAILABLE_TEXT


def test_http_error_degrades():
    session = FakeSession(FakeResponse({"error": "bad key"}, status=401))
    assert _client(session).complete("sys", "hi") == UNAVAILABLE_TEXT


def test_malformed_body_degrades():
    session = FakeSession(FakeResponse({"choices": []}))
    assert _client(session).complete("sys", "hi") == UNAVAILABLE_TEXT


def test_backend_selection():
    assert isinstance(get_completion_client("none"), DisabledCompletion)
    assert isinstance(get_completion_client("local"), LocalLLM)
    assert isinstance(get_completion_client("openai"), OpenAIChatCompletion)
    assert DisabledCompletion().complete("sys", "hi") == NO_CREDENTIALS_TEXT


def test_system_prompt_lists_departments(catalog):
    prompt = build_system_prompt(catalog)
    assert prompt.startswith(SYSTEM_PROMPT)
    assert "Available Departments and Services:" in prompt
    assert "- Cashier's Office: Admin Building, Room 105. Services: tuition, payment. Hours: Mon-Fri 8:00 AM - 4:30 PM." in prompt


def test_system_prompt_without_departments():
    prompt = build_system_prompt(Catalog())
    assert "Available Departments" not in prompt
    assert "department list above" in prompt
