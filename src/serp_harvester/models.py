"""Protocols and lightweight model types."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

SleepFn = Callable[[float, float], Awaitable[None]]


class ElementLike(Protocol):
    """Contract for a located DOM element."""

    async def click(self, *, delay: float = 0) -> None:
        """Click the element, holding the press for ``delay`` ms."""

    async def scroll_into_view_if_needed(self) -> None:
        """Scroll the element into the viewport."""

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a function with the element as its first argument."""


class PageLike(Protocol):
    """Narrow browser capability the controller, detector and paginator rely on."""

    @property
    def url(self) -> str:
        """Current page URL."""

    async def goto(self, url: str, *, timeout: float) -> None:
        """Navigate and wait for DOM content to load."""

    async def reload(self) -> None:
        """Reload and wait for DOM content to load."""

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate script in the page context."""

    async def query_selector(self, selector: str) -> ElementLike | None:
        """Return the first matching element or None."""

    async def click(self, selector: str) -> None:
        """Click the first element matching a selector."""

    async def wait_for_selector(self, selector: str, *, timeout: float) -> None:
        """Wait until a selector appears."""

    async def wait_for_load_state(self, state: str = "domcontentloaded") -> None:
        """Wait for a page load state."""

    async def content(self) -> str:
        """Return serialized page HTML."""

    def frame_urls(self) -> list[str]:
        """Return URLs of every frame in the page."""


class RecordSink(Protocol):
    """Contract for persistence collaborators."""

    async def write(self, records: Sequence[Record]) -> None:
        """Persist records; failures are logged, never raised."""


class TokenSolver(Protocol):
    """Contract for the external challenge-solving service."""

    def solve(self, sitekey: str, page_url: str, type_hint: str | None = None) -> str | None:
        """Return a proof token or None when every challenge type failed."""


class ChallengeKind(str, Enum):
    """Classification of a detected challenge."""

    CONSENT = "consent"
    INTERACTIVE = "interactive"


class SessionOutcome(str, Enum):
    """Why a query session stopped."""

    BLOCKED = "blocked"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass(frozen=True)
class Record:
    """An extracted email with the query it was found under."""

    email: str
    query: str
    timestamp: str


@dataclass(frozen=True)
class ChallengeContext:
    page_url: str
    kind: ChallengeKind
    sitekey: str | None = None
    type_hint: str | None = None


@dataclass
class SolveTicket:
    """One outstanding request to the solving service."""

    ticket_id: str
    started_at: float
    budget: float

    def expired(self, now: float) -> bool:
        return now - self.started_at >= self.budget


@dataclass(frozen=True)
class ResolveResult:
    solved: bool
    token: str | None = None


@dataclass(frozen=True)
class SessionResult:
    """Summary of one finished query session."""

    query: str
    outcome: SessionOutcome
    pages: int
    records: int
