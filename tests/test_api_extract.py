from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from pathlib import Path

import anyio
import httpx
import pytest

import apps.api.main as api_main
from apps.api.main import app


@pytest.fixture(autouse=True)
def _reset_store() -> Iterator[None]:
    api_main.reset_rule_store()
    yield
    api_main.reset_rule_store()


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "filter.yaml"
    path.write_text(
        "rules: |\n"
        "  title text \\btitle\\b\n"
        "replace_rules: |\n"
        "  clean text (\\d+) N\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("PARSEFILTER_CONFIG", str(path))
    return path


@pytest.mark.anyio
async def test_extract_returns_fields(config_path: Path) -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/extract",
            json={
                "url": "http://example.com/",
                "content": "<html></html>",
                "text": "A Title page, item 42",
                "fields": {"existing": "kept"},
            },
        )

    assert response.status_code == 200
    assert response.headers["X-Parsefilter-Request-Id"]
    assert response.json() == {
        "url": "http://example.com/",
        "fields": {"existing": "kept", "title": "Title", "clean": "N"},
    }


@pytest.mark.anyio
async def test_extract_logs_start_and_done(
    config_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="parsefilter.api")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/v1/extract", json={"text": "title"})

    assert response.status_code == 200
    request_id = response.headers["X-Parsefilter-Request-Id"]
    messages = [record.message for record in caplog.records if record.name == "parsefilter.api"]
    assert any('"event":"start"' in message and request_id in message for message in messages)
    assert any('"event":"done"' in message and request_id in message for message in messages)


@pytest.mark.anyio
async def test_extract_rejects_invalid_json(config_path: Path) -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/extract",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    payload = response.json()
    assert payload["error_code"] == "INVALID_JSON"
    assert payload["detail"]["request_id"] == response.headers["X-Parsefilter-Request-Id"]


@pytest.mark.anyio
async def test_extract_rejects_unknown_keys(config_path: Path) -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/v1/extract", json={"body": "x"})

    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_REQUEST"


@pytest.mark.anyio
async def test_extract_reports_invalid_rule_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="parsefilter.api")
    path = tmp_path / "filter.yaml"
    path.write_text("rules: |\n  bad text (\n", encoding="utf-8")
    monkeypatch.setenv("PARSEFILTER_CONFIG", str(path))

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/v1/extract", json={"text": "x"})

    assert response.status_code == 500
    payload = response.json()
    assert payload["error_code"] == "RULE_CONFIG_INVALID"
    assert payload["detail"]["field"] == "bad"
    messages = [record.message for record in caplog.records if record.name == "parsefilter.api"]
    assert any(
        '"error_code":"RULE_CONFIG_INVALID"' in message
        and '"failure_stage":"load_rules"' in message
        for message in messages
    )


@pytest.mark.anyio
async def test_rules_lists_loaded_tables(config_path: Path) -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/v1/rules")

    assert response.status_code == 200
    payload = response.json()
    assert payload["extract_rules"] == [
        {"field": "title", "source": "text", "pattern": "\\btitle\\b"}
    ]
    assert payload["replace_rules"][0]["terms"] == ["N"]
    assert payload["load"]["loaded"] is True
    assert payload["load"]["extract_origin"] == "inline:rules"


@pytest.mark.anyio
async def test_rules_use_bundled_default_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PARSEFILTER_CONFIG", raising=False)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/v1/rules")

    assert response.status_code == 200
    payload = response.json()
    assert payload["load"]["extract_origin"] == "resource:regex-parsefilter.txt"
    assert [rule["field"] for rule in payload["extract_rules"]] == ["generator"]


@pytest.mark.anyio
async def test_healthz_responds_while_extract_is_running(
    config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def slow_filter(document, fields, store):  # noqa: ANN001, ANN202
        time.sleep(0.5)
        return fields

    monkeypatch.setattr(api_main, "apply_filter", slow_filter)
    timings: dict[str, float] = {}
    statuses: dict[str, int] = {}

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:

        async def run_extract() -> None:
            response = await client.post("/v1/extract", json={"text": "title"})
            statuses["extract"] = response.status_code

        async def run_healthz() -> None:
            await anyio.sleep(0.05)
            started = time.perf_counter()
            response = await client.get("/healthz")
            timings["healthz"] = time.perf_counter() - started
            statuses["healthz"] = response.status_code

        async with anyio.create_task_group() as group:
            group.start_soon(run_extract)
            group.start_soon(run_healthz)

    assert statuses == {"extract": 200, "healthz": 200}
    assert timings["healthz"] < 0.3


@pytest.mark.anyio
async def test_extract_reports_missing_rule_config_and_retries(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "filter.yaml"
    path.write_text("", encoding="utf-8")
    monkeypatch.setenv("PARSEFILTER_CONFIG", str(path))

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        missing = await client.post("/v1/extract", json={"text": "A Title page"})

        path.write_text("rules: |\n  title text \\btitle\\b\n", encoding="utf-8")
        loaded = await client.post("/v1/extract", json={"text": "A Title page"})

    assert missing.status_code == 503
    payload = missing.json()
    assert payload["error_code"] == "RULE_CONFIG_MISSING"
    assert payload["detail"]["errors"] == ["no rule configuration found"]
    assert loaded.status_code == 200
    assert loaded.json()["fields"] == {"title": "Title"}
