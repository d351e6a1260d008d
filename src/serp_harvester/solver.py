"""NopeCHA token API client."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from typing import Any

from requests import Response, Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from .models import SolveTicket

FALLBACK_TYPES = ("recaptcha3", "recaptcha", "recaptcha_enterprise")
ACTION_TYPES = frozenset({"recaptcha3"})
INVALID_TYPE_REGEX = re.compile(r"Invalid type", re.IGNORECASE)
RATE_LIMIT_BACKOFF = 1.0


def make_retry_session(user_agent: str) -> Session:
    """Create requests session that retries server errors; 429 is left to the caller."""
    session = Session()
    session.headers.update({"User-Agent": user_agent})
    retry = Retry(
        total=3,
        backoff_factor=0.6,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=frozenset({"GET", "POST"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def candidate_types(type_hint: str | None) -> list[str]:
    """Challenge types to try, hint first, without repeats."""
    types: list[str] = [type_hint] if type_hint else []
    for value in FALLBACK_TYPES:
        if value not in types:
            types.append(value)
    return types


def _json_or_empty(response: Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def token_from_payload(payload: dict[str, Any]) -> str | None:
    """Return the first non-empty token, solution or string data field."""
    for key in ("token", "solution", "data"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class NopechaClient:
    """Submit/poll wrapper around the NopeCHA token endpoint."""

    def __init__(
        self,
        *,
        session: Session,
        api_key: str,
        timeout: float,
        logger: logging.Logger,
        base_url: str = "https://api.nopecha.com",
        poll_interval: float = 1.5,
        max_poll_attempts: int = 20,
        poll_budget: float = 45.0,
        action: str = "check",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._api_key = api_key
        self._timeout = timeout
        self._logger = logger
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._poll_budget = poll_budget
        self._action = action
        self._sleep = sleep
        self._clock = clock

    def solve(self, sitekey: str, page_url: str, type_hint: str | None = None) -> str | None:
        for challenge_type in candidate_types(type_hint):
            token = self._solve_type(sitekey, page_url, challenge_type)
            if token:
                self._logger.info(
                    "NopeCHA token received (%s): %s...", challenge_type, token[:12]
                )
                return token
        self._logger.warning("No token returned from NopeCHA after trying all types.")
        return None

    def _solve_type(self, sitekey: str, page_url: str, challenge_type: str) -> str | None:
        body: dict[str, Any] = {
            "key": self._api_key,
            "type": challenge_type,
            "sitekey": sitekey,
            "url": page_url,
        }
        if challenge_type in ACTION_TYPES:
            body["data"] = {"action": self._action}
        try:
            response = self._session.post(
                f"{self._base_url}/token", json=body, timeout=self._timeout
            )
        except RequestException as exc:
            self._logger.warning("NopeCHA token request (%s) failed: %s", challenge_type, exc)
            return None

        if not response.ok:
            text = response.text or ""
            self._logger.warning(
                "NopeCHA /token (%s) returned %d: %s",
                challenge_type,
                response.status_code,
                text[:200],
            )
            if response.status_code == 400 and INVALID_TYPE_REGEX.search(text):
                return None
            if response.status_code == 429:
                self._sleep(RATE_LIMIT_BACKOFF)
            return None

        payload = _json_or_empty(response)
        token = payload.get("token")
        if isinstance(token, str) and token:
            return token
        ticket_id = payload.get("id") or payload.get("data") or payload.get("task")
        if not ticket_id:
            return None
        ticket = SolveTicket(
            ticket_id=str(ticket_id), started_at=self._clock(), budget=self._poll_budget
        )
        return self.poll(ticket)

    def poll(self, ticket: SolveTicket) -> str | None:
        """Poll for a ticket's result until attempts or the time budget run out."""
        params = {"key": self._api_key, "id": ticket.ticket_id}
        for _ in range(self._max_poll_attempts):
            if ticket.expired(self._clock()):
                break
            self._sleep(self._poll_interval)
            try:
                response = self._session.get(self._base_url, params=params, timeout=self._timeout)
            except RequestException as exc:
                self._logger.debug("NopeCHA poll for %s failed: %s", ticket.ticket_id, exc)
                continue
            if not response.ok:
                if response.status_code == 429:
                    self._sleep(RATE_LIMIT_BACKOFF)
                continue
            token = token_from_payload(_json_or_empty(response))
            if token:
                return token
        self._logger.warning("Timed out waiting for NopeCHA ticket %s", ticket.ticket_id)
        return None
