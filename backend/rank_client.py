"""Ranking task client for the DataForSEO SERP API (task_post / task_get).

One query is three provider round-trips: submit the task, wait a fixed delay,
poll for the result. The provider has no push notification, so the delay is
unavoidable. Concurrent calls share a semaphore and back off on HTTP 429/5xx.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

import config
from grid import GeoPoint
from locations import LocationResolver
from matcher import RankedResult, find_rank

logger = logging.getLogger(__name__)

TASK_POST_PATH = "/serp/google/organic/task_post"
TASK_GET_PATH = "/serp/google/organic/task_get/{task_id}"
STATUS_PATH = "/status"

STATUS_OK = "Ok."
STATUS_IN_PROGRESS = "Task In Progress."
RETRYABLE_STATUS = (429, 500, 502, 503, 504)

Sleep = Callable[[float], Awaitable[None]]


class ErrorKind(Enum):
    TASK_CREATION_FAILED = "task_creation_failed"
    NO_RESULTS = "no_results"


class RankingError(Exception):
    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TaskCreationFailed(RankingError):
    kind = ErrorKind.TASK_CREATION_FAILED


class NoResults(RankingError):
    kind = ErrorKind.NO_RESULTS


class TaskStatus(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class RankQuery:
    keyword: str
    location_name: str
    business_name: str
    coordinate: GeoPoint | None = None


@dataclass
class RankTask:
    id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: TaskStatus = TaskStatus.PENDING


def _safe_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _safe_float(value: Any) -> float | None:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_item(item: dict, index: int) -> RankedResult:
    # SERP items use "position" for alignment ("left"/"right"); ranks live in rank_*
    position = next(
        (p for p in (_safe_int(item.get(k)) for k in ("position", "rank_group", "rank_absolute")) if p and p > 0),
        index,
    )
    rating = item.get("rating")
    if isinstance(rating, dict):
        rating = rating.get("rating_value")
    return RankedResult(
        position=position,
        title=str(item.get("title") or ""),
        url=str(item.get("url") or ""),
        description=item.get("description"),
        rating=_safe_float(rating),
    )


def parse_items(items: list[Any]) -> list[RankedResult]:
    """Convert provider items to RankedResults, keeping provider order."""
    return [_parse_item(item, i) for i, item in enumerate(items, start=1) if isinstance(item, dict)]


def _first_task(data: Any) -> dict:
    if not isinstance(data, dict):
        return {}
    tasks = data.get("tasks")
    if not isinstance(tasks, list) or not tasks or not isinstance(tasks[0], dict):
        return {}
    return tasks[0]


def _task_items(task: dict) -> list[Any]:
    result = task.get("result")
    if not isinstance(result, list) or not result or not isinstance(result[0], dict):
        return []
    items = result[0].get("items")
    return items if isinstance(items, list) else []


class RankingTaskClient:
    def __init__(
        self,
        login: str | None = None,
        password: str | None = None,
        *,
        base_url: str = config.DATAFORSEO_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        resolver: LocationResolver | None = None,
        sleep: Sleep = asyncio.sleep,
        poll_delay: float = config.POLL_DELAY_S,
        poll_max_attempts: int = config.POLL_MAX_ATTEMPTS,
        poll_retry_delay: float = config.POLL_RETRY_DELAY_S,
        concurrency: int = config.PROVIDER_CONCURRENCY,
        retry_max: int = config.PROVIDER_RETRY_MAX,
    ) -> None:
        if login is None or password is None:
            login, password = config.require_credentials()
        self.base_url = base_url.rstrip("/")
        self.resolver = resolver or LocationResolver()
        self.poll_delay = poll_delay
        self.poll_max_attempts = max(1, poll_max_attempts)
        self.poll_retry_delay = poll_retry_delay
        self.retry_max = retry_max
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_S)
        self._auth = httpx.BasicAuth(login, password)

    async def __aenter__(self) -> "RankingTaskClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---------- transport ----------

    async def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        retries = 0
        while True:
            async with self._semaphore:
                try:
                    resp = await self._client.request(method, url, json=json, auth=self._auth)
                except httpx.TimeoutException:
                    if retries >= self.retry_max:
                        raise
                    logger.warning("Timeout calling %s (attempt %d)", path, retries + 1)
                    resp = None
            if resp is not None and resp.status_code not in RETRYABLE_STATUS:
                return resp
            if resp is not None and retries >= self.retry_max:
                return resp
            wait = 2 ** retries
            if resp is not None:
                logger.warning("HTTP %d from %s, waiting %ds", resp.status_code, path, wait)
            await self._sleep(wait)
            retries += 1

    # ---------- task lifecycle ----------

    def build_task_payload(self, query: RankQuery) -> list[dict]:
        if not query.keyword or not query.keyword.strip():
            raise ValueError("Keyword must be provided for ranking lookups.")
        task: dict[str, Any] = {
            "keyword": query.keyword.strip(),
            "language_code": config.LANGUAGE_CODE,
            "device": config.DEVICE,
            "os": config.OS,
            "depth": config.RESULT_DEPTH,
        }
        if query.coordinate is not None:
            task["location_coordinate"] = f"{query.coordinate.lat:.7f},{query.coordinate.lng:.7f}"
        else:
            task["location_code"] = self.resolver.resolve(query.location_name)
        return [task]

    async def submit(self, query: RankQuery) -> RankTask:
        """Post a search task; raise TaskCreationFailed on any rejection."""
        payload = self.build_task_payload(query)
        try:
            resp = await self._request("POST", TASK_POST_PATH, json=payload)
        except httpx.HTTPError as exc:
            raise TaskCreationFailed(f"Task submission failed: {exc}") from exc

        if resp.status_code != 200:
            raise TaskCreationFailed(f"Task submission returned HTTP {resp.status_code}")
        try:
            task = _first_task(resp.json())
        except ValueError as exc:
            raise TaskCreationFailed("Task submission returned a non-JSON body") from exc

        task_id = task.get("id")
        status_code = _safe_int(task.get("status_code")) or 0
        if not task_id or status_code >= 40000:
            raise TaskCreationFailed(
                f"No task id in response: {task.get('status_message', 'missing task')}"
            )
        logger.info("Created search task %s for keyword %r", task_id, query.keyword)
        return RankTask(id=str(task_id))

    async def poll(self, task: RankTask) -> list[RankedResult]:
        """Wait for the task and return its ranked list, or raise NoResults."""
        try:
            await self._sleep(self.poll_delay)
            for attempt in range(1, self.poll_max_attempts + 1):
                status, items = await self._fetch(task)
                results = parse_items(items)
                if results:
                    task.status = TaskStatus.READY
                    logger.info("Task %s ready with %d results", task.id, len(results))
                    return results
                if status == STATUS_IN_PROGRESS and attempt < self.poll_max_attempts:
                    logger.info(
                        "Task %s still in progress, retrying in %.0fs (attempt %d/%d)",
                        task.id, self.poll_retry_delay, attempt, self.poll_max_attempts,
                    )
                    await self._sleep(self.poll_retry_delay)
                    continue
                break
        except asyncio.CancelledError:
            task.status = TaskStatus.FAILED
            logger.warning("Polling cancelled, abandoning task %s", task.id)
            raise

        task.status = TaskStatus.FAILED
        raise NoResults(f"Task {task.id} returned no results")

    async def _fetch(self, task: RankTask) -> tuple[str | None, list[Any]]:
        try:
            resp = await self._request("GET", TASK_GET_PATH.format(task_id=task.id))
        except httpx.HTTPError as exc:
            logger.error("Polling task %s failed: %s", task.id, exc)
            return None, []
        if resp.status_code != 200:
            logger.error("HTTP %d polling task %s", resp.status_code, task.id)
            return None, []
        try:
            entry = _first_task(resp.json())
        except ValueError:
            logger.error("Non-JSON body polling task %s", task.id)
            return None, []
        return entry.get("status_message"), _task_items(entry)

    # ---------- public operations ----------

    async def search(
        self, keyword: str, location_name: str, coordinate: GeoPoint | None = None
    ) -> list[RankedResult]:
        """Run one task and return the raw ranked list."""
        task = await self.submit(RankQuery(keyword, location_name, "", coordinate))
        return await self.poll(task)

    async def query_rank(self, query: RankQuery) -> int:
        """Position of query.business_name in the results, -1 if absent.

        Raises TaskCreationFailed or NoResults; a missing business is not an error.
        """
        task = await self.submit(query)
        results = await self.poll(task)
        return find_rank(results, query.business_name)

    async def check_credentials(self) -> tuple[bool, str]:
        try:
            resp = await self._request("GET", STATUS_PATH)
        except httpx.HTTPError as exc:
            logger.error("Credential check failed: %s", exc)
            return False, f"Connection error: {exc}"
        if resp.status_code == 200:
            return True, "Successfully connected to DataForSEO API"
        if resp.status_code == 401:
            return False, "Authentication failed. Please check your DataForSEO credentials."
        return False, f"API call failed with status: {resp.status_code}"
