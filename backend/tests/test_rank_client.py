"""Tests for the ranking task client against a mocked provider."""

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from grid import GeoPoint
from rank_client import (
    ErrorKind,
    NoResults,
    RankingTaskClient,
    RankQuery,
    RankTask,
    TaskCreationFailed,
    TaskStatus,
    parse_items,
)

BASE = "https://api.test/v3"


def task_created(task_id="task-1"):
    return {"tasks": [{"id": task_id, "status_code": 20100, "status_message": "Task Created."}]}


def task_ready(items):
    return {"tasks": [{"id": "task-1", "status_message": "Ok.", "result": [{"items": items}]}]}


def task_in_progress():
    return {"tasks": [{"id": "task-1", "status_message": "Task In Progress.", "result": None}]}


ITEMS = [
    {"position": 1, "title": "Blue Bottle Coffee", "url": "https://bluebottle.example"},
    {"position": 2, "title": "Peet's Coffee", "url": "https://peets.example", "rating": {"rating_value": 4.4}},
    {"position": 3, "title": "Starbucks Market St", "url": "https://starbucks.example", "description": "Coffee"},
]


class Provider:
    """Scripted DataForSEO stand-in recording every request."""

    def __init__(self, post=None, gets=None, status=200):
        self.post = post if post is not None else httpx.Response(200, json=task_created())
        self.gets = list(gets or [])
        self.status = status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/task_post"):
            return self.post
        if request.url.path.endswith("/status"):
            return httpx.Response(self.status, json={})
        return self.gets.pop(0)


def make_client(provider, **kwargs):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    client = RankingTaskClient("login", "secret", base_url=BASE, http_client=http, sleep=fake_sleep, **kwargs)
    return client, sleeps


def run(coro):
    return asyncio.run(coro)


QUERY = RankQuery(keyword="coffee shop", location_name="San Francisco", business_name="Starbucks")


def test_query_rank_found():
    provider = Provider(gets=[httpx.Response(200, json=task_ready(ITEMS))])
    client, sleeps = make_client(provider)
    assert run(client.query_rank(QUERY)) == 3
    # submit, fixed delay, single poll
    assert len(provider.requests) == 2
    assert sleeps == [config.POLL_DELAY_S]


def test_task_payload_shape():
    provider = Provider(gets=[httpx.Response(200, json=task_ready(ITEMS))])
    client, _ = make_client(provider)
    run(client.query_rank(QUERY))
    post = provider.requests[0]
    assert post.method == "POST"
    assert post.headers["authorization"].startswith("Basic ")
    body = json.loads(post.content)
    assert body == [{
        "keyword": "coffee shop",
        "location_code": 1023191,
        "language_code": "en",
        "device": "desktop",
        "os": "windows",
        "depth": 20,
    }]
    assert provider.requests[1].url.path == "/v3/serp/google/organic/task_get/task-1"


def test_coordinate_query_uses_location_coordinate():
    client, _ = make_client(Provider())
    query = RankQuery("coffee shop", "San Francisco", "Starbucks", GeoPoint(37.7749, -122.4194))
    [task] = client.build_task_payload(query)
    assert task["location_coordinate"] == "37.7749000,-122.4194000"
    assert "location_code" not in task


def test_business_not_found_is_not_an_error():
    provider = Provider(gets=[httpx.Response(200, json=task_ready(ITEMS[:2]))])
    client, _ = make_client(provider)
    assert run(client.query_rank(QUERY)) == -1


def test_submission_rejected():
    provider = Provider(post=httpx.Response(401, json={"status_message": "Unauthorized"}))
    client, _ = make_client(provider)
    with pytest.raises(TaskCreationFailed) as exc_info:
        run(client.query_rank(QUERY))
    assert exc_info.value.kind is ErrorKind.TASK_CREATION_FAILED


def test_submission_missing_task_id():
    provider = Provider(post=httpx.Response(200, json={"tasks": [{"status_code": 40501, "status_message": "Invalid Field"}]}))
    client, _ = make_client(provider)
    with pytest.raises(TaskCreationFailed):
        run(client.query_rank(QUERY))


def test_submission_malformed_body():
    provider = Provider(post=httpx.Response(200, content=b"<html>oops</html>"))
    client, _ = make_client(provider)
    with pytest.raises(TaskCreationFailed):
        run(client.query_rank(QUERY))


def test_single_poll_without_results():
    provider = Provider(gets=[httpx.Response(200, json=task_in_progress())])
    client, _ = make_client(provider)
    with pytest.raises(NoResults) as exc_info:
        run(client.query_rank(QUERY))
    assert exc_info.value.kind is ErrorKind.NO_RESULTS
    assert len(provider.requests) == 2


def test_bounded_poll_retry():
    provider = Provider(gets=[
        httpx.Response(200, json=task_in_progress()),
        httpx.Response(200, json=task_ready(ITEMS)),
    ])
    client, sleeps = make_client(provider, poll_max_attempts=3, poll_retry_delay=5.0)
    assert run(client.query_rank(QUERY)) == 3
    assert sleeps == [config.POLL_DELAY_S, 5.0]


def test_poll_marks_task_status():
    provider = Provider(gets=[httpx.Response(200, json=task_ready(ITEMS))])
    client, _ = make_client(provider)
    task = RankTask(id="task-1")
    assert task.status is TaskStatus.PENDING
    run(client.poll(task))
    assert task.status is TaskStatus.READY

    provider.gets.append(httpx.Response(200, json=task_in_progress()))
    failed = RankTask(id="task-1")
    with pytest.raises(NoResults):
        run(client.poll(failed))
    assert failed.status is TaskStatus.FAILED


def test_rate_limit_backoff_then_success():
    provider = Provider(gets=[
        httpx.Response(429, json={}),
        httpx.Response(200, json=task_ready(ITEMS)),
    ])
    client, sleeps = make_client(provider)
    assert run(client.query_rank(QUERY)) == 3
    assert sleeps == [config.POLL_DELAY_S, 1]


def test_search_returns_parsed_results():
    provider = Provider(gets=[httpx.Response(200, json=task_ready(ITEMS))])
    client, _ = make_client(provider)
    results = run(client.search("coffee shop", "San Francisco"))
    assert [r.position for r in results] == [1, 2, 3]
    assert results[1].rating == 4.4
    assert results[2].description == "Coffee"


def test_empty_keyword_rejected():
    client, _ = make_client(Provider())
    with pytest.raises(ValueError):
        client.build_task_payload(RankQuery(" ", "San Francisco", "Starbucks"))


def test_check_credentials():
    client, _ = make_client(Provider(status=200))
    ok, _ = run(client.check_credentials())
    assert ok

    client, _ = make_client(Provider(status=401))
    ok, message = run(client.check_credentials())
    assert not ok
    assert "Authentication failed" in message


def test_missing_credentials(monkeypatch):
    monkeypatch.setattr(config, "DATAFORSEO_LOGIN", "")
    with pytest.raises(config.ConfigError):
        RankingTaskClient()


def test_parse_items_falls_back_to_rank_fields():
    results = parse_items([{"rank_absolute": 4, "title": "A"}, "junk", {"title": "B"}])
    assert [(r.position, r.title) for r in results] == [(4, "A"), (3, "B")]


SERP_ITEMS = [
    {"type": "organic", "position": "left", "rank_group": 1, "rank_absolute": 2, "title": "Blue Bottle Coffee"},
    {"type": "organic", "position": "right", "rank_group": 2, "rank_absolute": 4, "title": "Starbucks Reserve",
     "rating": {"rating_value": "n/a"}},
]


def test_alignment_position_falls_back_to_rank_group():
    provider = Provider(gets=[httpx.Response(200, json=task_ready(SERP_ITEMS))])
    client, _ = make_client(provider)
    assert run(client.query_rank(QUERY)) == 2


def test_malformed_item_fields_are_tolerated():
    results = parse_items([
        {"position": "left", "title": None, "url": None, "rating": "four stars"},
        {"position": 2.0, "title": "Starbucks", "rating": {"rating_value": "4.1"}},
    ])
    assert [(r.position, r.title, r.rating) for r in results] == [(1, "", None), (2, "Starbucks", 4.1)]


def test_unparseable_items_mean_no_results():
    provider = Provider(gets=[httpx.Response(200, json=task_ready(["junk", 3]))])
    client, _ = make_client(provider)
    with pytest.raises(NoResults):
        run(client.query_rank(QUERY))


def test_malformed_task_envelope_means_no_results():
    provider = Provider(gets=[httpx.Response(200, json={"tasks": {"id": "task-1"}})])
    client, _ = make_client(provider)
    with pytest.raises(NoResults):
        run(client.query_rank(QUERY))


def test_non_numeric_status_code():
    provider = Provider(post=httpx.Response(200, json={"tasks": [{"status_code": "oops"}]}))
    client, _ = make_client(provider)
    with pytest.raises(TaskCreationFailed):
        run(client.submit(QUERY))

    provider = Provider(post=httpx.Response(200, json={"tasks": [{"id": "task-9", "status_code": "oops"}]}))
    client, _ = make_client(provider)
    assert run(client.submit(QUERY)).id == "task-9"
