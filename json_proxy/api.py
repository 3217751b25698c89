"""
JSON Proxy Web API
FastAPI front end for the json-proxy service
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, load_settings
from .links import client_identity, request_origin
from .models import ServiceResponse
from .service import ProxyService

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class CreateProxyRequest(BaseModel):
    # Left untyped so a non-string url is reported by the validator (400), not pydantic (422).
    url: Any = None


def to_response(result: ServiceResponse) -> Response:
    headers = dict(result.headers)
    if result.is_raw:
        headers.pop("Content-Type", None)
        return Response(
            content=bytes(result.body),  # type: ignore[arg-type]
            status_code=result.status_code,
            headers=headers,
            media_type="application/json",
        )
    return JSONResponse(result.body, status_code=result.status_code, headers=headers)


def _client_id(request: Request, settings: Settings) -> str:
    peer = request.client.host if request.client else None
    return client_identity(request.headers, peer, trust_forwarded=settings.trust_forwarded_headers)


def _origin(request: Request) -> str:
    return request_origin(request.headers, request.url.scheme, request.url.netloc)


def create_app(settings: Settings | None = None, service: ProxyService | None = None) -> FastAPI:
    """Build the app. Served with `uvicorn --factory json_proxy.api:create_app`
    or `json-proxy serve`.
    """
    settings = settings or (service.settings if service else load_settings())
    service = service or ProxyService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.aclose()

    app = FastAPI(
        title="JSON Proxy Service",
        description="Validate third-party JSON endpoints and relay them through one origin",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        for k, v in CORS_HEADERS.items():
            response.headers[k] = v
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(
            {"error": "Invalid URL format", "message": "Please provide a valid URL"},
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return JSONResponse({"error": "Method not allowed"}, status_code=405)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return to_response(service.health())

    @app.post("/create-proxy")
    @app.post("/api/create-proxy")
    async def create_proxy(body: CreateProxyRequest, request: Request):
        """Probe a URL and return a proxy link for it"""
        result = await service.create_proxy(
            body.url, client_id=_client_id(request, service.settings), origin=_origin(request)
        )
        return to_response(result)

    @app.get("/proxy")
    @app.get("/api/proxy")
    async def proxy(request: Request, url: str | None = Query(None)):
        """Fetch a JSON URL and relay its body"""
        result = await service.fetch_proxy(url, client_id=_client_id(request, service.settings))
        return to_response(result)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
