from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .config import AkeneoConfig
from .constants import DEFAULT_REFRESH_IF_WITHIN_SECS, GRANT_TYPE_PASSWORD, OAUTH_PATH, TOKEN_PATH
from .errors import CredentialExchangeError
from .events import debug, error, info
from .time_utils import Clock, add_seconds, utc_now
from .transport import SentRequest, Transport, TransportFailure


def basic_auth_header(client_id: str, client_secret: str) -> str:
    basic = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return f"Basic {basic}"


# =========================================
# SECTION A — GRANT
# =========================================
@dataclass(frozen=True)
class Grant:
    """
    One access token plus its lifetime. Replaced on refresh, never mutated.
    """
    access_token: str
    expires_in: int
    issued_at: datetime
    refresh_token: Optional[str] = None

    @property
    def expires_at(self) -> datetime:
        return add_seconds(self.issued_at, self.expires_in)

    def expires_within(self, seconds: float, *, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= add_seconds(now or utc_now(), seconds)

    @staticmethod
    def from_response(data: Dict[str, Any], *, now: Optional[datetime] = None) -> "Grant":
        return Grant(
            access_token=str(data["access_token"]),
            expires_in=int(data["expires_in"]),
            issued_at=now or utc_now(),
            refresh_token=data.get("refresh_token") or None,
        )


# =========================================
# SECTION B — CREDENTIAL EXCHANGE
# Why: the only place that talks to the OAuth endpoint.
# =========================================
class AuthApi:
    """
    Exchanges account username/password + client id/secret for a Grant
    using the password flow.
    """

    def __init__(self, config: AkeneoConfig, transport: Transport, *, clock: Clock = utc_now) -> None:
        self.config = config
        self.endpoint = f"{config.endpoint}{OAUTH_PATH}"
        self._transport = transport
        self._clock = clock

    @property
    def token_url(self) -> str:
        return f"{self.endpoint}{TOKEN_PATH}"

    async def exchange(self) -> Grant:
        url = self.token_url
        headers = {
            "Authorization": basic_auth_header(self.config.client_id, self.config.client_secret),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        body = {
            "grant_type": GRANT_TYPE_PASSWORD,
            "username": self.config.username,
            "password": self.config.password,
        }

        info("auth.token.start", url=url)
        try:
            result = await self._transport.send(
                "POST",
                url,
                headers=headers,
                json_body=body,
                timeout_s=self.config.timeout_s,
            )
        except Exception as e:
            sent = SentRequest(method="POST", url=url, headers=headers, json=body)
            error("auth.token.error", url=url, error=repr(e)[:500])
            raise CredentialExchangeError(
                f"Token exchange failed: {e}",
                {"code": type(e).__name__, "request": sent.snapshot(), "response": None},
            ) from e

        if isinstance(result, TransportFailure):
            error("auth.token.error", url=url, status=result.status, code=result.code)
            raise result.to_error(CredentialExchangeError) from result.cause

        try:
            grant = Grant.from_response(result.json() or {}, now=self._clock())
        except (KeyError, TypeError, ValueError) as e:
            sent = SentRequest(method="POST", url=url, headers=headers, json=body)
            error("auth.token.error", url=url, status=result.status, error="malformed token response")
            raise CredentialExchangeError(
                "Token endpoint returned a malformed grant",
                {"code": "ERR_BAD_GRANT", "request": sent.snapshot(), "response": result.snapshot()},
                result.status,
            ) from e

        info("auth.token.ok", url=url, expires_in=grant.expires_in, elapsed_ms=result.elapsed_ms)
        return grant


# =========================================
# SECTION C — TOKEN CACHE
# Why: N concurrent requests on a cold or expiring cache must trigger ONE
# exchange; everybody awaits the same in-flight task.
# =========================================
class TokenCache:
    def __init__(
        self,
        exchanger: AuthApi,
        *,
        refresh_if_within_secs: int = DEFAULT_REFRESH_IF_WITHIN_SECS,
        clock: Clock = utc_now,
    ) -> None:
        self.refresh_if_within_secs = refresh_if_within_secs
        self._exchanger = exchanger
        self._clock = clock
        self._grant: Optional[Grant] = None
        self._pending: Optional["asyncio.Task[Grant]"] = None

    @property
    def current(self) -> Optional[Grant]:
        return self._grant

    def needs_refresh(self) -> bool:
        grant = self._grant
        if grant is None:
            return True
        return grant.expires_within(self.refresh_if_within_secs, now=self._clock())

    async def get_token(self) -> Grant:
        pending = self._pending
        if pending is None:
            if not self.needs_refresh():
                return self._grant  # type: ignore[return-value]
            debug("auth.token.refresh", refresh_if_within_secs=self.refresh_if_within_secs)
            pending = asyncio.ensure_future(self._refresh())
            self._pending = pending

        # shield: one cancelled caller must not cancel the refresh the others wait on
        return await asyncio.shield(pending)

    def invalidate(self) -> None:
        """Forget the current grant; the next get_token() exchanges again."""
        self._grant = None

    async def _refresh(self) -> Grant:
        try:
            grant = await self._exchanger.exchange()
            self._grant = grant
            return grant
        finally:
            # failures leave the previous grant in place and free the slot
            self._pending = None
