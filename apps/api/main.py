"""FastAPI wrapper for the postsmith extraction and rendering pipeline."""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any, get_args

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from core.config.loader import list_presets, load_preset
from core.config.models import TemplateDefinition
from core.extraction.entries import parse_document
from core.extraction.inference import SUPPORTED_MODES, infer_pattern
from core.extraction.models import Entry, MergeAction
from core.extraction.variant_selector import select_variant
from core.orchestrator.pipeline import compile_definition, run_import, run_render_batch
from core.patterns.models import InferenceMode, Variant
from core.templating.conditions import CONDITION_KINDS
from core.utils.errors import TemplateSyntaxError

app = FastAPI(title="postsmith API", version="0.1.0")
logger = logging.getLogger("postsmith.api")

_REQUEST_ID_HEADER = "X-Postsmith-Request-Id"


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


class _DefinitionRequest(BaseModel):
    """Either an inline definition or the name of a packaged preset."""

    model_config = ConfigDict(extra="forbid")

    definition: TemplateDefinition | None = None
    preset: str | None = None


class ExtractRequest(_DefinitionRequest):
    text: str
    variant_id: str | None = None


class ImportRequest(_DefinitionRequest):
    text: str
    variant_id: str | None = None
    existing: dict[str, Entry] = Field(default_factory=dict)


class RenderRequest(_DefinitionRequest):
    entries: list[Entry] = Field(min_length=1)


class InferRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str
    selection_start: int = Field(ge=0)
    selection_end: int = Field(ge=0)
    mode: InferenceMode = "auto"


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


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    request_id = _request_id_from_request(request)
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code="INVALID_REQUEST",
        status_code=422,
        failure_stage="validate_inputs",
        path=request.url.path,
    )
    return _error_response(
        status_code=422,
        error_code="INVALID_REQUEST",
        message="request body failed validation",
        request_id=request_id,
        detail={"errors": errors},
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/meta")
async def meta_v1(request: Request) -> JSONResponse:
    """Metadata endpoint for editor/bootstrap clients."""

    request_id = _request_id_from_request(request)
    payload = {
        "inference_modes": list(SUPPORTED_MODES),
        "condition_kinds": list(CONDITION_KINDS),
        "merge_actions": list(get_args(MergeAction)),
        "presets": list_presets(),
        "version": app.version,
    }
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/extract")
async def extract_v1(request: Request, body: ExtractRequest) -> JSONResponse:
    """Parse text into entries with a per-field report; nothing is persisted."""

    def handle() -> dict[str, Any]:
        definition = _resolve_definition(body)
        variant = _resolve_variant(definition, body.text, body.variant_id)
        result = parse_document(body.text, variant, definition.merge)
        return {
            "variant_id": variant.id,
            "block_count": result.block_count,
            "skipped_blocks": result.skipped_blocks,
            "summary": result.report.summary(),
            "outcomes": [outcome.model_dump(mode="json") for outcome in result.report.outcomes],
            "entries": [entry.model_dump(mode="json") for entry in result.entries],
        }

    return _run_route(request, "extract", handle)


@app.post("/v1/infer")
async def infer_v1(request: Request, body: InferRequest) -> JSONResponse:
    """Infer anchors for a highlighted span."""

    def handle() -> dict[str, Any]:
        try:
            inferred = infer_pattern(body.text, body.selection_start, body.selection_end, body.mode)
        except ValueError as exc:
            raise ApiRequestError(
                status_code=400,
                error_code="INVALID_SELECTION",
                message=str(exc),
                detail={
                    "selection_start": body.selection_start,
                    "selection_end": body.selection_end,
                    "text_length": len(body.text),
                },
            ) from exc
        return inferred.model_dump(mode="json")

    return _run_route(request, "infer", handle)


@app.post("/v1/import")
async def import_v1(request: Request, body: ImportRequest) -> JSONResponse:
    """Merge parsed entries into the caller-supplied ``existing`` map and return it."""

    def handle() -> dict[str, Any]:
        definition = _resolve_definition(body)
        if body.variant_id is not None:
            _resolve_variant(definition, body.text, body.variant_id)
        result = run_import(body.text, definition, body.existing, variant_id=body.variant_id)
        return {
            "variant_id": result.variant_id,
            "created_keys": result.created_keys,
            "updated_keys": result.updated_keys,
            "skipped_blocks": result.skipped_blocks,
            "summary": result.report.summary(),
            "entries": {key: entry.model_dump(mode="json") for key, entry in result.entries.items()},
        }

    return _run_route(request, "import", handle)


@app.post("/v1/render")
async def render_v1(request: Request, body: RenderRequest) -> JSONResponse:
    """Render the given entries with the definition's template, joined by newline."""

    def handle() -> dict[str, Any]:
        definition = _resolve_definition(body)
        try:
            nodes = compile_definition(definition)
        except TemplateSyntaxError as exc:
            raise ApiRequestError(
                status_code=422,
                error_code="TEMPLATE_SYNTAX_ERROR",
                message=str(exc),
                detail={"key": exc.key, "offset": exc.offset},
            ) from exc
        return {
            "output": run_render_batch(definition, body.entries, nodes),
            "entry_count": len(body.entries),
        }

    return _run_route(request, "render", handle)


def _run_route(request: Request, route: str, handler: Callable[[], dict[str, Any]]) -> JSONResponse:
    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    _log_event(logging.INFO, "start", request_id, route=route)

    try:
        payload = handler()
    except ApiRequestError as exc:
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            route=route,
            error_code=exc.error_code,
            status_code=exc.status_code,
        )
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
        route=route,
        total_ms=_elapsed_ms(request_started),
    )
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


def _resolve_definition(body: _DefinitionRequest) -> TemplateDefinition:
    if (body.definition is None) == (body.preset is None):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT_CONFLICT",
            message="exactly one of definition or preset is required",
            detail={"field": "definition"},
        )
    if body.definition is not None:
        return body.definition

    try:
        return load_preset(body.preset or "")
    except ValueError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="UNKNOWN_PRESET",
            message=str(exc),
            detail={"field": "preset", "supported_presets": list_presets()},
        ) from exc


def _resolve_variant(definition: TemplateDefinition, text: str, variant_id: str | None) -> Variant:
    parser = definition.parser
    if variant_id is None:
        return select_variant(text, parser.variants, parser.default_variant)
    try:
        return parser.get_variant(variant_id)
    except KeyError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="UNKNOWN_VARIANT",
            message=f"unknown variant: {variant_id}",
            detail={"field": "variant_id", "variants": [variant.id for variant in parser.variants]},
        ) from exc


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


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


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
