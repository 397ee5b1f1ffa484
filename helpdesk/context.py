from __future__ import annotations
import hashlib, hmac
from typing import Any, Dict, Optional

class ContextSigner:
    """HMAC-signs the client-echoed conversation context so a confirmation can
    only resume an offer that was made to the same user."""
    def __init__(self, secret: str):
        self._key = secret.encode("utf-8")

    def _digest(self, user_id: str, original_message: str, category: str) -> str:
        msg = "\x1f".join([user_id, original_message, category or ""]).encode("utf-8")
        return hmac.new(self._key, msg, hashlib.sha256).hexdigest()

    def sign(self, user_id: str, context: Dict[str, Any]) -> Dict[str, Any]:
        sig = self._digest(user_id, context["originalMessage"], context.get("category") or "")
        return {**context, "signature": sig}

    def verify(self, user_id: str, context: Dict[str, Any]) -> bool:
        sig = context.get("signature")
        if not sig or not context.get("originalMessage"):
            return False
        expected = self._digest(user_id, context["originalMessage"], context.get("category") or "")
        return hmac.compare_digest(expected, str(sig))

def get_context_signer(secret: Optional[str]) -> Optional[ContextSigner]:
    return ContextSigner(secret) if secret else None
