"""HTTP endpoint that proxies scan images to the vision gateway.

``POST /analyze-scan`` accepts ``{"imageBase64": "<base64 or data URI>"}``
and answers with the validated result document, or ``{"error": ...}`` with
status 400, 402, 429 or 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import AppConfig
from .errors import InvalidInput, MedScanError, QuotaExhausted, RateLimited
from .images import ScanImage, normalize_data_uri
from .providers.remote import GatewayVisionProvider

logger = logging.getLogger(__name__)

CORS_ALLOWED_HEADERS = [
    "authorization",
    "x-client-info",
    "apikey",
    "content-type",
    "x-supabase-client-platform",
    "x-supabase-client-platform-version",
    "x-supabase-client-runtime",
    "x-supabase-client-runtime-version",
]


class ScanRequest(BaseModel):
    image_base64: str | None = Field(default=None, alias="imageBase64")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    config: AppConfig | None = None,
    *,
    provider: GatewayVisionProvider | None = None,
) -> FastAPI:
    """Build the FastAPI application around a gateway provider."""
    config = config or AppConfig()
    if provider is None:
        provider = GatewayVisionProvider(config)
        provider.load()

    app = FastAPI(title="MedScan Analysis API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS", "GET"],
        allow_headers=CORS_ALLOWED_HEADERS,
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
        # Unparseable bodies and wrongly typed fields answer 500 like other failures.
        messages = "; ".join(str(error.get("msg", "")) for error in exc.errors())
        logger.error("analyze-scan rejected request body: %s", messages)
        return _error(500, messages or "Invalid request body")

    @app.get("/")
    def health_check():
        return {"status": "ok"}

    @app.post("/analyze-scan")
    def analyze_scan(request: ScanRequest):
        # Sync handler: FastAPI runs it in its threadpool while the gateway call blocks.
        if not request.image_base64 or not request.image_base64.strip():
            return _error(400, "No image data provided")
        try:
            data_uri = normalize_data_uri(request.image_base64)
            ScanImage.from_data_uri(data_uri)
            result = provider.analyze_data_uri(data_uri)
        except InvalidInput as exc:
            return _error(400, str(exc))
        except RateLimited as exc:
            return _error(429, str(exc))
        except QuotaExhausted as exc:
            return _error(402, str(exc))
        except MedScanError as exc:
            logger.error("analyze-scan error: %s", exc)
            return _error(500, str(exc))
        except Exception as exc:
            logger.exception("analyze-scan failed unexpectedly")
            return _error(500, str(exc) or "Unknown error")
        return JSONResponse(content=result.to_payload())

    return app


def serve(config: AppConfig) -> None:
    """Run the endpoint with uvicorn."""
    import uvicorn

    uvicorn.run(create_app(config), host=config.server_host, port=config.server_port)
