from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ...config import load_auth_url, load_backend, load_dev_tokens, load_llm, load_request_timeout
from ...domain.models import AnalysisRecord
from ...logging import get_logger
from ...paths import find_project_root
from ..auth import BackendTokenVerifier, StaticTokenVerifier, TokenVerificationError, TokenVerifier
from ..constants import MAX_HISTORY_ITEMS, MAX_INPUT_LENGTH, MIN_INPUT_LENGTH, MIN_TOKEN_LENGTH
from ..db import AnalysisDatabase
from ..model import build_openai_analyzer
from ..service import AnalysisService, ModelUnavailableError
from ..validation import InputValidationError, validate_input


LOG = get_logger("analysis-server")

ANALYZE_PATH = "/functions/v1/analyze_product"
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

UNEXPECTED_ERROR = "An unexpected error occurred. Please try again."
SESSION_EXPIRED = "Session expired. Please sign in again."

_SERVER_INPUT_MESSAGES = {
    "missing": "input_text is required and must be a string",
    "too_short": f"Input must be at least {MIN_INPUT_LENGTH} characters",
    "too_long": f"Input must not exceed {MAX_INPUT_LENGTH} characters",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _parse_int(value: Optional[str], *, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except (TypeError, ValueError):
        parsed = default
    if parsed < minimum:
        return minimum
    if parsed > maximum:
        return maximum
    return parsed


def _record_payload(record: AnalysisRecord) -> Dict[str, Any]:
    payload = record.as_dict()
    payload.pop("owner_id", None)
    payload.pop("source", None)
    return payload


def _default_service(project_root: str) -> AnalysisService:
    db = AnalysisDatabase(root_dir=project_root)
    api_key, model_name, base_url = load_llm(project_root)
    analyzer = None
    if api_key:
        analyzer = build_openai_analyzer(
            api_key, model_name, base_url=base_url, timeout=load_request_timeout(project_root)
        )
    else:
        LOG.error("CRITICAL: LLM_API_KEY is not configured; analysis requests will fail with 500")
    return AnalysisService(db, analyzer)


def _default_verifier(project_root: str) -> Optional[TokenVerifier]:
    dev_tokens = load_dev_tokens(project_root)
    if dev_tokens:
        LOG.warning("Using static development tokens for authentication")
        return StaticTokenVerifier(dev_tokens)
    auth_url = load_auth_url(project_root, fallback_to_backend=False)
    if auth_url:
        _, anon_key = load_backend(project_root)
        return BackendTokenVerifier(auth_url, anon_key)
    LOG.error("CRITICAL: no token verifier configured (INGREDIENT_LENS_AUTH_URL or INGREDIENT_LENS_DEV_TOKENS)")
    return None


def create_app(
    root_dir: Optional[str] = None,
    *,
    service: Optional[AnalysisService] = None,
    verifier: Optional[TokenVerifier] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing the analysis function and the history API."""

    project_root = find_project_root(root_dir)
    svc = service or _default_service(project_root)
    token_verifier = verifier if verifier is not None else _default_verifier(project_root)

    async def _authenticate(request: Request) -> Union[str, JSONResponse]:
        """Return the owner id for the request's bearer token, or an error response."""
        header = request.headers.get("authorization") or ""
        if not header.startswith("Bearer "):
            return _error(401, "Missing or invalid authorization header")
        token = header[len("Bearer "):].strip()
        if len(token) < MIN_TOKEN_LENGTH:
            return _error(401, "Invalid token format")
        if token_verifier is None:
            return _error(500, "Server configuration error")
        try:
            owner_id = await run_in_threadpool(token_verifier.verify, token)
        except TokenVerificationError:
            return _error(500, UNEXPECTED_ERROR)
        if not owner_id:
            return _error(401, SESSION_EXPIRED)
        return owner_id

    async def _read_input(request: Request) -> Tuple[Optional[str], Optional[JSONResponse]]:
        try:
            body = await request.json()
        except ValueError:
            return None, _error(400, "Invalid JSON in request body")
        raw = body.get("input_text") if isinstance(body, dict) else None
        try:
            return validate_input(raw), None
        except InputValidationError as exc:
            return None, _error(400, _SERVER_INPUT_MESSAGES.get(exc.reason, exc.user_message))

    async def analyze_product(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200)
        if request.method != "POST":
            return _error(405, "Method not allowed")
        if not svc.configured or token_verifier is None:
            LOG.error("Missing required configuration (analyzer or token verifier)")
            return _error(500, "Server configuration error")

        owner = await _authenticate(request)
        if isinstance(owner, JSONResponse):
            return owner
        text, problem = await _read_input(request)
        if problem is not None:
            return problem

        try:
            record = await run_in_threadpool(svc.analyze, owner, text)
        except ModelUnavailableError as exc:
            return _error(503, str(exc))
        except Exception:
            LOG.exception("Unexpected error while analyzing input")
            return _error(500, UNEXPECTED_ERROR)
        return JSONResponse(_record_payload(record))

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "analyzer": svc.configured})

    async def list_analyses(request: Request) -> JSONResponse:
        owner = await _authenticate(request)
        if isinstance(owner, JSONResponse):
            return owner
        qp = request.query_params
        limit = _parse_int(qp.get("limit"), default=MAX_HISTORY_ITEMS, minimum=1, maximum=MAX_HISTORY_ITEMS)
        offset = _parse_int(qp.get("offset"), default=0, minimum=0, maximum=1_000_000)
        records = await run_in_threadpool(svc.list_history, owner, limit=limit, offset=offset)
        return JSONResponse({"items": [_record_payload(r) for r in records], "limit": limit, "offset": offset})

    async def count_analyses(request: Request) -> JSONResponse:
        owner = await _authenticate(request)
        if isinstance(owner, JSONResponse):
            return owner
        count = await run_in_threadpool(svc.count_history, owner)
        return JSONResponse({"count": count})

    async def analysis_detail(request: Request) -> JSONResponse:
        owner = await _authenticate(request)
        if isinstance(owner, JSONResponse):
            return owner
        analysis_id = request.path_params["analysis_id"]
        if request.method == "DELETE":
            deleted = await run_in_threadpool(svc.delete_analysis, owner, analysis_id)
            if not deleted:
                return _error(404, "Analysis not found")
            return JSONResponse({"success": True})
        record = await run_in_threadpool(svc.get_analysis, owner, analysis_id)
        if record is None:
            return _error(404, "Analysis not found")
        return JSONResponse(_record_payload(record))

    async def clear_analyses(request: Request) -> JSONResponse:
        owner = await _authenticate(request)
        if isinstance(owner, JSONResponse):
            return owner
        removed = await run_in_threadpool(svc.clear_history, owner)
        return JSONResponse({"success": True, "deleted": removed})

    async def analyses_collection(request: Request) -> JSONResponse:
        if request.method == "DELETE":
            return await clear_analyses(request)
        return await list_analyses(request)

    routes = [
        Route(ANALYZE_PATH, analyze_product, methods=ALL_METHODS),
        Route("/api/health", health, methods=["GET"]),
        Route("/api/analyses", analyses_collection, methods=["GET", "DELETE"]),
        Route("/api/analyses/count", count_analyses, methods=["GET"]),
        Route("/api/analyses/{analysis_id:str}", analysis_detail, methods=["GET", "DELETE"]),
    ]

    app = Starlette(debug=False, routes=routes)

    origins = allow_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["POST", "GET", "DELETE", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    LOG.info("Analysis API ready (analyzer=%s, verifier=%s)", svc.configured, type(token_verifier).__name__)
    return app


__all__ = ["create_app", "ANALYZE_PATH"]
