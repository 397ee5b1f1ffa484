from __future__ import annotations
import json, logging
from dataclasses import dataclass
from typing import Optional

import requests

from .catalog import Catalog
from .config import (
    LLM_BACKEND, LLM_MAX_TOKENS, LLM_MODEL, LLM_TEMPERATURE, LLM_TIMEOUT_SECONDS,
    OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL,
)

logger = logging.getLogger("registrar.llm")

NO_CREDENTIALS_TEXT = (
    "I'm here to help with registrar-related inquiries. Could you please provide more details about your "
    "question? You can also create a ticket for assistance."
)
UNAVAILABLE_TEXT = (
    "I'm having trouble processing that right now. Please try rephrasing your question or create a ticket "
    "for assistance."
)

SYSTEM_PROMPT = (
    "You are a helpful AI assistant for a university registrar's office. Help students with questions about "
    "enrollment, transcripts, grades, and other university services. Be friendly, professional, and concise. "
    "If a student needs to create a ticket, guide them on how to do so."
)

def build_system_prompt(catalog: Catalog) -> str:
    return (
        SYSTEM_PROMPT
        + catalog.department_context()
        + "\n\nWhen students ask about where to find services or departments, provide specific location "
          "information from the department list above."
    )

@dataclass
class LLMConfig:
    model_id: str = OPENAI_MODEL
    max_new_tokens: int = LLM_MAX_TOKENS
    temperature: float = LLM_TEMPERATURE
    timeout: Optional[float] = LLM_TIMEOUT_SECONDS

class CompletionClient:
    """Last-resort responder. `complete` never raises; failures degrade to a static text."""
    def complete(self, system_prompt: str, user_message: str) -> str:
        raise NotImplementedError

class DisabledCompletion(CompletionClient):
    def complete(self, system_prompt: str, user_message: str) -> str:
        return NO_CREDENTIALS_TEXT

class OpenAIChatCompletion(CompletionClient):
    """Chat-completions call over HTTP. One request per call, no retry."""
    def __init__(self, api_key: Optional[str] = OPENAI_API_KEY, base_url: str = OPENAI_BASE_URL,
                 cfg: Optional[LLMConfig] = None, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.cfg = cfg or LLMConfig()
        self.http = session or requests.Session()

    def complete(self, system_prompt: str, user_message: str) -> str:
        if not self.api_key:
            return NO_CREDENTIALS_TEXT
        payload = {
            "model": self.cfg.model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "max_tokens": self.cfg.max_new_tokens,
            "temperature": self.cfg.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            r = self.http.post(self.url, json=payload, headers=headers, timeout=self.cfg.timeout)
            r.raise_for_status()
            return r.json()["choices"][0]["message"]["content"].strip()
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.warning(json.dumps({"event": "completion_failed", "model": self.cfg.model_id, "error": str(e)}))
            return UNAVAILABLE_TEXT

class LocalLLM(CompletionClient):
    """Small open-source chat model via Transformers, loaded on first use.
    Needs the `local-llm` extra (torch + transformers).
    """
    _tokenizer = None
    _model = None
    _loaded_model_id = None

    def __init__(self, cfg: Optional[LLMConfig] = None):
        self.cfg = cfg or LLMConfig(model_id=LLM_MODEL)

    def _load(self):
        if LocalLLM._model is not None and LocalLLM._loaded_model_id == self.cfg.model_id:
            return
        import torch
        from transformers import AutoTokenizer, AutoModelForCausalLM

        tok = AutoTokenizer.from_pretrained(self.cfg.model_id, use_fast=True)
        # Some models don't have pad token; set to eos
        if tok.pad_token_id is None and tok.eos_token_id is not None:
            tok.pad_token = tok.eos_token
        dtype = torch.float16 if torch.cuda.is_available() else torch.float32
        model = AutoModelForCausalLM.from_pretrained(self.cfg.model_id, torch_dtype=dtype, low_cpu_mem_usage=True)
        model.to(torch.device("cuda" if torch.cuda.is_available() else "cpu"))
        model.eval()

        LocalLLM._tokenizer = tok
        LocalLLM._model = model
        LocalLLM._loaded_model_id = self.cfg.model_id

    def _input_ids(self, system: str, user: str):
        tok = LocalLLM._tokenizer
        if getattr(tok, "chat_template", None):
            messages = [{"role": "system", "content": system}, {"role": "user", "content": user}]
            prompt = tok.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
        else:
            prompt = f"SYSTEM:\n{system}\n\nUSER:\n{user}\n\nASSISTANT:\n"
        return tok(prompt, return_tensors="pt").input_ids

    def complete(self, system_prompt: str, user_message: str) -> str:
        try:
            import torch
            self._load()
            model, tok = LocalLLM._model, LocalLLM._tokenizer
            input_ids = self._input_ids(system_prompt, user_message).to(next(model.parameters()).device)
            with torch.no_grad():
                out = model.generate(
                    input_ids=input_ids,
                    max_new_tokens=self.cfg.max_new_tokens,
                    do_sample=True,
                    temperature=self.cfg.temperature,
                    pad_token_id=tok.pad_token_id,
                    eos_token_id=tok.eos_token_id,
                )
            return tok.decode(out[0][input_ids.shape[-1]:], skip_special_tokens=True).strip()
        except Exception as e:
            # Missing extras, download or inference failure all degrade the same way
            logger.warning(json.dumps({"event": "completion_failed", "model": self.cfg.model_id, "error": str(e)}))
            return UNAVAILABLE_TEXT

def get_completion_client(backend: str = LLM_BACKEND) -> CompletionClient:
    if backend == "local":
        return LocalLLM()
    if backend == "none":
        return DisabledCompletion()
    return OpenAIChatCompletion()
