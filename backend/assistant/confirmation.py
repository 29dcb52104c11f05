"""
Confirmation handshake

A held call is returned to the caller with a signed token as its toolCallId.
The token binds the exact call (id, tool name, canonical arguments), the
context and mode it was issued in, the references the safety guard verified,
and an expiry. The server keeps no pending state; the only server-side memory
is the ledger of consumed token ids that makes each token single-use.

Token format: base64url(json claims) "." base64url(HMAC-SHA256(claims))
"""
import base64
import binascii
import hashlib
import hmac
import json
import secrets
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from models.chat import ChatMode
from .errors import ConfirmationMismatchError
from utils.logger import get_logger

logger = get_logger(__name__)


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class ConfirmationClaims(BaseModel):
    """What a confirmation token attests"""
    jti: str
    call_id: str
    name: str
    arguments: Dict[str, Any]
    context: Optional[str] = None
    mode: ChatMode
    references: List[Tuple[Optional[str], str]] = []
    exp: float

    def arguments_match(self, arguments: Dict[str, Any]) -> bool:
        return canonical_json(arguments) == canonical_json(self.arguments)


class ConfirmationSigner:
    """
    Issues and verifies confirmation tokens.

    Args:
        secret: HMAC key. Tokens survive restarts only with a configured secret.
        ttl_seconds: Token lifetime
        clock: Wall clock (seconds), injectable for tests
    """

    def __init__(self, secret: Optional[str] = None, ttl_seconds: float = 900, clock: Callable[[], float] = time.time):
        if not secret:
            logger.warning("CONFIRMATION_SECRET not set; using a per-process secret")
            secret = secrets.token_hex(32)
        self._key = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(
        self,
        call_id: str,
        name: str,
        arguments: Dict[str, Any],
        context: Optional[str],
        mode: ChatMode,
        references: Optional[List[Tuple[Optional[str], str]]] = None,
    ) -> Tuple[str, ConfirmationClaims]:
        claims = ConfirmationClaims(
            jti=uuid.uuid4().hex,
            call_id=call_id,
            name=name,
            arguments=arguments,
            context=context,
            mode=mode,
            references=list(references or []),
            exp=self._clock() + self.ttl_seconds,
        )
        body = canonical_json(claims.model_dump(mode="json")).encode("utf-8")
        token = f"{_b64encode(body)}.{_b64encode(self._sign(body))}"
        return token, claims

    def verify(self, token: str) -> ConfirmationClaims:
        """
        Check signature and expiry.

        Raises:
            ConfirmationMismatchError: malformed, forged or expired token
        """
        try:
            body_part, sig_part = token.split(".")
            body = _b64decode(body_part)
            signature = _b64decode(sig_part)
        except (ValueError, binascii.Error):
            raise ConfirmationMismatchError("Confirmation token is malformed", reason="malformed") from None

        if not hmac.compare_digest(signature, self._sign(body)):
            raise ConfirmationMismatchError("Confirmation token does not match any pending action", reason="signature")

        try:
            claims = ConfirmationClaims.model_validate_json(body)
        except ValidationError:
            raise ConfirmationMismatchError("Confirmation token is malformed", reason="malformed") from None

        if claims.exp <= self._clock():
            raise ConfirmationMismatchError("Confirmation token has expired", reason="expired", tool=claims.name)
        return claims

    def _sign(self, body: bytes) -> bytes:
        return hmac.new(self._key, body, hashlib.sha256).digest()


class ConfirmationLedger:
    """
    Records consumed token ids so a token executes at most once.

    Subclass with a shared store (Redis SET NX EX, a DB unique key) when the
    API runs on several processes.
    """

    def consume(self, jti: str, expires_at: float) -> bool:
        """Mark a token as used. Returns False when it was already used."""
        raise NotImplementedError


class InMemoryConfirmationLedger(ConfirmationLedger):
    """
    Process-local ledger. Entries are evicted once their token has expired,
    since an expired token is rejected by the signer anyway.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._consumed: Dict[str, float] = {}
        self._lock = threading.Lock()

    def consume(self, jti: str, expires_at: float) -> bool:
        with self._lock:
            self._evict()
            if jti in self._consumed:
                return False
            self._consumed[jti] = expires_at
            return True

    def __len__(self) -> int:
        with self._lock:
            self._evict()
            return len(self._consumed)

    def _evict(self) -> None:
        now = self._clock()
        expired = [jti for jti, exp in self._consumed.items() if exp <= now]
        for jti in expired:
            del self._consumed[jti]
