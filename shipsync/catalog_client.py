import enum
import logging
import time
from dataclasses import dataclass, field, replace
from threading import Lock
from typing import Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window rate limiter (thread-safe).

    Allows up to `rate` requests per `period`-second window.
    The window starts on the first request. While tokens remain, requests
    proceed immediately. When the bucket is empty, the limiter sleeps until
    the current window expires, then opens a fresh window with a full bucket.
    If no requests arrive before a window expires, the next request simply
    starts a new window.
    """

    def __init__(self, rate: int, period: float = 1.0):
        self._rate = rate
        self._period = period
        self._tokens = rate
        self._window_start = None   # window starts lazily on first request
        self._lock = Lock()

    def acquire(self):
        with self._lock:
            now = time.monotonic()

            if self._window_start is None or (now - self._window_start) >= self._period:
                self._window_start = now
                self._tokens = self._rate

            if self._tokens > 0:
                self._tokens -= 1
            else:
                wait = self._period - (now - self._window_start)
                if wait > 0:
                    time.sleep(wait)
                self._window_start = time.monotonic()
                self._tokens = self._rate - 1   # consume 1 token for this request


_shared_limiter = None
_shared_limiter_lock = Lock()


def get_shared_rate_limiter() -> RateLimiter:
    """Process-wide limiter shared by every client, so concurrent runs share one budget."""
    global _shared_limiter
    with _shared_limiter_lock:
        if _shared_limiter is None:
            _shared_limiter = RateLimiter(
                settings.SHIP_CATALOG_RATE_LIMIT,
                settings.SHIP_CATALOG_RATE_PERIOD,
            )
        return _shared_limiter


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: tuple = (1.0, 2.0, 4.0)
    max_delay: float = 30.0

    @classmethod
    def from_settings(cls) -> 'RetryPolicy':
        return cls(
            max_attempts=settings.SHIP_CATALOG_MAX_ATTEMPTS,
            backoff=tuple(settings.SHIP_CATALOG_BACKOFF),
            max_delay=settings.SHIP_CATALOG_MAX_RETRY_DELAY,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed `attempt` (1-based); the last step repeats."""
        if not self.backoff:
            return 0.0
        return float(self.backoff[min(attempt, len(self.backoff)) - 1])

    def wait_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before the next attempt: upstream Retry-After when given, never above `max_delay`."""
        wait = self.delay_for(attempt) if retry_after is None else retry_after
        return max(0.0, min(wait, self.max_delay))


class PageStatus(str, enum.Enum):
    OK = 'ok'
    RETRYABLE_ERROR = 'retryable_error'
    PAGE_ERROR = 'page_error'
    FATAL_ERROR = 'fatal_error'


@dataclass(frozen=True)
class PageResult:
    page: int
    status: PageStatus
    records: list = field(default_factory=list)
    has_more: bool = False
    message: str = ''
    attempts: int = 1
    retry_after: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status is PageStatus.OK


class CatalogClient:
    """Paginated reader over the external ship catalog API."""

    def __init__(self, rate_limiter: Optional[RateLimiter] = None, retry_policy: Optional[RetryPolicy] = None):
        self._base_url = settings.SHIP_CATALOG_API_BASE_URL.rstrip('/')
        self._models_url = f"{self._base_url}/{settings.SHIP_CATALOG_MODELS_PATH.lstrip('/')}"
        self._pagination = settings.SHIP_CATALOG_PAGINATION
        self._timeout = settings.SHIP_CATALOG_REQUEST_TIMEOUT
        self._session = requests.Session()
        self._session.headers.update({'Accept': 'application/json'})
        if settings.SHIP_CATALOG_API_TOKEN:
            self._session.headers.update({'Authorization': f'Bearer {settings.SHIP_CATALOG_API_TOKEN}'})
        self._rate_limiter = rate_limiter or get_shared_rate_limiter()
        self._retry_policy = retry_policy or RetryPolicy.from_settings()

    def fetch_page(self, page: int, page_size: int, deadline: Optional[float] = None) -> PageResult:
        """
        Fetch one page of catalog records.

        Transient failures (timeouts, connection errors, 5xx, 429) are retried
        according to the retry policy. The result is always returned, never
        raised: the caller decides whether a failed page aborts the run.

        `deadline` is a time.monotonic() value; no retry wait runs past it.
        """
        policy = self._retry_policy
        result = None
        for attempt in range(1, policy.max_attempts + 1):
            self._rate_limiter.acquire()
            result = self._attempt(page, page_size, attempt)
            if result.status is not PageStatus.RETRYABLE_ERROR:
                return result

            if attempt < policy.max_attempts:
                wait = policy.wait_for(attempt, result.retry_after)
                if deadline is not None and time.monotonic() + wait >= deadline:
                    logger.error(
                        "Catalog page %d: %s. Retrying in %.1fs would pass the run deadline – giving up.",
                        page, result.message, wait,
                    )
                    return replace(result, message=f'{result.message}; retry abandoned at run deadline')
                logger.warning(
                    "Catalog page %d: %s (attempt %d/%d). Waiting %.1fs before retry.",
                    page, result.message, attempt, policy.max_attempts, wait,
                )
                time.sleep(wait)

        logger.error(
            "Catalog page %d failed after %d attempts: %s",
            page, policy.max_attempts, result.message,
        )
        return result

    def _params(self, page: int, page_size: int) -> dict:
        if self._pagination == 'offset':
            return {'offset': (page - 1) * page_size, 'limit': page_size}
        return {'page': page, 'perPage': page_size}

    def _attempt(self, page: int, page_size: int, attempt: int) -> PageResult:
        try:
            response = self._session.get(
                self._models_url,
                params=self._params(page, page_size),
                timeout=self._timeout,
            )
        except requests.Timeout:
            return PageResult(page, PageStatus.RETRYABLE_ERROR, message='request timed out', attempts=attempt)
        except requests.ConnectionError as exc:
            return PageResult(page, PageStatus.RETRYABLE_ERROR, message=f'connection error: {exc}', attempts=attempt)

        code = response.status_code
        if code in (401, 403):
            return PageResult(
                page, PageStatus.FATAL_ERROR,
                message=f'upstream rejected credentials (HTTP {code})', attempts=attempt,
            )
        if code == 429:
            return PageResult(
                page, PageStatus.RETRYABLE_ERROR,
                message='429 Too Many Requests', attempts=attempt,
                retry_after=self._parse_retry_after(response),
            )
        if code >= 500:
            return PageResult(page, PageStatus.RETRYABLE_ERROR, message=f'server error (HTTP {code})', attempts=attempt)
        if code >= 400:
            return PageResult(page, PageStatus.PAGE_ERROR, message=f'client error (HTTP {code})', attempts=attempt)

        try:
            payload = response.json()
        except ValueError as exc:
            return PageResult(page, PageStatus.PAGE_ERROR, message=f'invalid JSON body: {exc}', attempts=attempt)

        if isinstance(payload, dict):
            payload = payload.get('items')
        if not isinstance(payload, list):
            return PageResult(page, PageStatus.PAGE_ERROR, message='unexpected response shape', attempts=attempt)

        if not payload:
            has_more = False
        elif 'next' in response.links:
            has_more = True
        elif response.headers.get('Link'):
            # A Link header without rel="next" marks the last page.
            has_more = False
        else:
            has_more = len(payload) >= page_size

        logger.info("Catalog page %d: %d records (has_more=%s).", page, len(payload), has_more)
        return PageResult(page, PageStatus.OK, records=payload, has_more=has_more, attempts=attempt)

    @staticmethod
    def _parse_retry_after(response: requests.Response):
        """Return float seconds from Retry-After header, or None if absent/invalid."""
        header = response.headers.get('Retry-After')
        if header is None:
            return None
        try:
            return float(header)
        except (TypeError, ValueError):
            return None
