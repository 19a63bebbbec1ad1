"""FastAPI wrapper for the regex parse filter."""

from __future__ import annotations

import importlib.metadata
import json
import logging
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.orchestrator.filter import ParsedDocument, apply_filter
from core.rules.config import load_filter_config
from core.rules.store import LoadReport, RuleStore
from core.utils.errors import PatternCompileError

app = FastAPI(title="regex-parsefilter API", version="0.1.0")
logger = logging.getLogger("parsefilter.api")

_REQUEST_ID_HEADER = "X-Parsefilter-Request-Id"


class ExtractRequest(BaseModel):
    """One parsed document handed over by the host."""

    model_config = ConfigDict(extra="forbid")

    url: str = ""
    content: str = ""
    text: str = ""
    fields: dict[str, str] = Field(default_factory=dict)


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


_store_lock = threading.Lock()
_store_cache: tuple[RuleStore, LoadReport] | None = None


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(_REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/rules")
async def rules_v1(request: Request) -> JSONResponse:
    """List the loaded rule tables."""

    request_id = _request_id_from_request(request)
    try:
        store, report = await run_in_threadpool(_get_rule_store)
    except ApiRequestError as exc:
        _log_api_error(request_id, exc, failure_stage="load_rules")
        return _error_response(
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            request_id=request_id,
            detail=exc.detail,
        )

    payload = {
        **store.tables.to_payload(),
        "load": _report_payload(report),
        "version": _package_version(),
    }
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/extract")
async def extract_v1(request: Request) -> JSONResponse:
    """Apply rules to one document and return the updated field map."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "validate_inputs"
        extract_request = await _parse_extract_request(request)

        failure_stage = "load_rules"
        store, report = await run_in_threadpool(_get_rule_store)
        if not report.loaded:
            raise ApiRequestError(
                status_code=503,
                error_code="RULE_CONFIG_MISSING",
                message="no rule configuration loaded",
                detail={"errors": list(report.errors)},
            )

        _log_event(
            logging.INFO,
            "start",
            request_id,
            url=extract_request.url,
            content_chars=len(extract_request.content),
            text_chars=len(extract_request.text),
        )

        failure_stage = "filter"
        document = ParsedDocument(
            url=extract_request.url,
            content=extract_request.content,
            text=extract_request.text,
        )
        fields = dict(extract_request.fields)
        await run_in_threadpool(apply_filter, document, fields, store)
    except ApiRequestError as exc:
        _log_api_error(request_id, exc, failure_stage=failure_stage)
        return _error_response(
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            request_id=request_id,
            detail=exc.detail,
        )

    _log_event(
        logging.INFO,
        "done",
        request_id,
        status_code=200,
        field_count=len(fields),
        total_ms=_elapsed_ms(request_started),
    )
    return JSONResponse(
        status_code=200,
        headers={_REQUEST_ID_HEADER: request_id},
        content={"url": extract_request.url, "fields": fields},
    )


async def _parse_extract_request(request: Request) -> ExtractRequest:
    body = await request.body()
    try:
        raw = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be valid JSON",
        ) from exc

    if not isinstance(raw, dict):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be a JSON object",
        )

    try:
        return ExtractRequest.model_validate(raw)
    except ValidationError as exc:
        raise ApiRequestError(
            status_code=422,
            error_code="INVALID_REQUEST",
            message="request body does not match schema",
            detail={"errors": [error["msg"] for error in exc.errors()]},
        ) from exc


def _get_rule_store() -> tuple[RuleStore, LoadReport]:
    """Return the process-wide store, loading it on first use.

    A store that found no rule source is not cached, so later requests retry.
    """

    global _store_cache

    with _store_lock:
        if _store_cache is not None:
            return _store_cache

        config_path = _config_path()
        try:
            config = load_filter_config(config_path)
            store = RuleStore()
            report = store.ensure_loaded(config)
        except ValueError as exc:
            raise ApiRequestError(
                status_code=500,
                error_code="RULE_CONFIG_INVALID",
                message=str(exc),
            ) from exc
        except PatternCompileError as exc:
            raise ApiRequestError(
                status_code=500,
                error_code="RULE_CONFIG_INVALID",
                message="invalid rule pattern",
                detail={"field": exc.field, "line_number": exc.line_number},
            ) from exc

        if not report.loaded:
            return store, report
        _store_cache = (store, report)
        return _store_cache


def reset_rule_store() -> None:
    """Drop the cached store so the next request reloads configuration."""

    global _store_cache

    with _store_lock:
        _store_cache = None


def _config_path() -> Path | None:
    raw = os.getenv("PARSEFILTER_CONFIG")
    if raw is None or not raw.strip():
        return None
    return Path(raw.strip())


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return uuid.uuid4().hex


def _report_payload(report: LoadReport) -> dict[str, Any]:
    return {
        "loaded": report.loaded,
        "extract_origin": report.extract_origin,
        "replace_origin": report.replace_origin,
        "extract_count": report.extract_count,
        "replace_count": report.replace_count,
        "errors": list(report.errors),
    }


def _package_version() -> str:
    try:
        return importlib.metadata.version("regex-parsefilter")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={_REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _log_api_error(request_id: str, exc: ApiRequestError, *, failure_stage: str) -> None:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
        failure_stage=failure_stage,
    )


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
