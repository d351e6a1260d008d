"""Runtime configuration model."""

from __future__ import annotations

from dataclasses import dataclass

from .validation import validate_runtime_constraints

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_SEARCH_ENDPOINT = "https://www.google.com/search"
DEFAULT_SOLVER_URL = "https://api.nopecha.com"
DEFAULT_SUPABASE_TABLE = "email_table"
DEFAULT_NAVIGATION_TIMEOUT = 30.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_UNSOLVED_CHALLENGES = 3
DEFAULT_MAX_CONSECUTIVE_ERRORS = 5
DEFAULT_POLL_INTERVAL = 1.5
DEFAULT_MAX_POLL_ATTEMPTS = 20
DEFAULT_POLL_BUDGET = 45.0
DEFAULT_RECAPTCHA_ACTION = "check"


@dataclass(frozen=True)
class HarvestConfig:
    """Validated configuration used by the harvesting pipeline."""

    input_path: str = "input.csv"
    output: str = "output.csv"
    headless: bool = False
    browsers: int = 1
    tabs_per_browser: int = 1
    concurrency: int = 1
    nopecha_key: str | None = None
    extension_path: str | None = None
    supabase_url: str | None = None
    supabase_key: str | None = None
    supabase_table: str = DEFAULT_SUPABASE_TABLE
    max_unsolved_challenges: int = DEFAULT_MAX_UNSOLVED_CHALLENGES
    max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS
    poll_budget: float = DEFAULT_POLL_BUDGET
    recaptcha_action: str = DEFAULT_RECAPTCHA_ACTION
    navigation_timeout: float = DEFAULT_NAVIGATION_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    search_endpoint: str = DEFAULT_SEARCH_ENDPOINT
    solver_url: str = DEFAULT_SOLVER_URL
    user_agent: str = DEFAULT_USER_AGENT
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            browsers=self.browsers,
            tabs_per_browser=self.tabs_per_browser,
            concurrency=self.concurrency,
            max_unsolved_challenges=self.max_unsolved_challenges,
            max_consecutive_errors=self.max_consecutive_errors,
            poll_interval=self.poll_interval,
            max_poll_attempts=self.max_poll_attempts,
            poll_budget=self.poll_budget,
        )

    @property
    def use_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)
