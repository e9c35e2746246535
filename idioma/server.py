"""FastAPI gateway exposing the extract, simplify and news flows."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from idioma.auth import StaticTokenVerifier, TokenVerifier
from idioma.config import Config, config
from idioma.core.article import SimplifiedContent
from idioma.core.exceptions import AuthError, IdiomaError, ValidationError
from idioma.core.processor import ArticleService, build_service
from idioma.core.simplifier import SimplifyChunk
from idioma.formatters.sse import format_chunk, format_error

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def _add_cors(app: FastAPI, origins: List[str]) -> None:
    """Allow the mobile app's web views and local tools to call the API."""
    origins = [o.strip() for o in origins if o and o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Starlette/FastAPI disallow wildcard origins when credentials are enabled.
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _verifier_from_config(cfg: Config) -> Optional[TokenVerifier]:
    if not cfg.get("auth.required"):
        return None
    return StaticTokenVerifier(cfg.get("auth.tokens") or {})


async def require_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Return the verified user id, or None when authentication is not enforced."""
    verifier: Optional[TokenVerifier] = request.app.state.verifier
    if verifier is None:
        return None
    if credentials is None:
        raise AuthError(details="Missing bearer token")
    uid = await verifier.verify(credentials.credentials)
    if uid is None:
        raise AuthError(details="Invalid bearer token")
    return uid


async def _request_params(request: Request) -> Dict[str, Any]:
    """Query parameters, completed by JSON body fields for POST requests."""
    params: Dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        body = await request.body()
        if body.strip():
            try:
                data = json.loads(body)
            except ValueError as exc:
                raise ValidationError("Request body must be JSON") from exc
            if isinstance(data, dict):
                for key, value in data.items():
                    params.setdefault(key, value)
    return params


def _is_true(value: Any) -> bool:
    return str(value).strip().lower() == "true"


@contextmanager
def _flow_failure(message: str):
    """Turn unexpected errors inside a flow into a 500 with details."""
    try:
        yield
    except IdiomaError:
        raise
    except Exception as exc:
        logger.exception(message)
        raise IdiomaError(message, details=str(exc)) from exc


async def _sse(chunks: AsyncIterator[SimplifyChunk]) -> AsyncIterator[str]:
    try:
        async for chunk in chunks:
            yield format_chunk(chunk)
    except IdiomaError as exc:
        logger.error(f"Stream aborted after output began: {exc}")
        yield format_error(exc.message)


def create_app(
    service: Optional[ArticleService] = None,
    verifier: Optional[TokenVerifier] = None,
    cfg: Config = config,
) -> FastAPI:
    """
    Build the gateway.

    Args:
        service: Pipeline to serve; built from ``cfg`` at startup when omitted
        verifier: Token verifier; taken from ``cfg`` when omitted
        cfg: Configuration
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.service is None
        if owned:
            app.state.service = build_service(cfg)
        try:
            yield
        finally:
            if owned:
                await app.state.service.close()

    app = FastAPI(title="Idioma", lifespan=lifespan)
    app.state.service = service
    app.state.verifier = verifier if verifier is not None else _verifier_from_config(cfg)
    _add_cors(app, cfg.get("server.cors_origins") or ["*"])

    @app.exception_handler(IdiomaError)
    async def handle_idioma_error(request: Request, exc: IdiomaError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.api_route("/extract", methods=["GET", "POST"])
    async def extract_article(request: Request, identity: Optional[str] = Depends(require_identity)):
        params = await _request_params(request)
        url = params.get("url")
        logger.info(f"extract called: url={url} user={identity}")
        with _flow_failure("Failed to extract article"):
            content = await request.app.state.service.extract(url)
        return content.to_dict()

    @app.api_route("/simplify", methods=["GET", "POST"])
    async def simplify_article(request: Request, identity: Optional[str] = Depends(require_identity)):
        params = await _request_params(request)
        url = params.get("url")
        level = params.get("level") or "B1"
        stream = _is_true(params.get("stream", "false"))
        logger.info(f"simplify called: url={url} level={level} stream={stream} user={identity}")

        service: ArticleService = request.app.state.service
        with _flow_failure("Failed to simplify article"):
            if not stream:
                return (await service.simplify(url, level)).to_dict()
            result = await service.simplify_stream(url, level)

        if isinstance(result, SimplifiedContent):
            return result.to_dict()
        return StreamingResponse(
            _sse(result), media_type="text/plain; charset=utf-8", headers=STREAM_HEADERS
        )

    @app.get("/news")
    async def get_news(request: Request, identity: Optional[str] = Depends(require_identity)):
        country = request.query_params.get("country")
        language = request.query_params.get("language")
        logger.info(f"Fetching news: country={country} language={language} user={identity}")
        with _flow_failure("Failed to fetch news"):
            listing = await request.app.state.service.news(country, language)
        return listing.to_response()

    return app


app = create_app()
