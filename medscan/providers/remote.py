"""Remote analysis through a hosted vision model.

Two transports share the same request/response handling:

* :class:`GatewayVisionProvider` talks to an OpenAI-compatible
  chat-completion gateway directly and enforces the triage policy on the
  model's answer. The HTTP endpoint in :mod:`medscan.server` wraps it.
* :class:`EndpointProvider` posts the image to a deployed ``analyze-scan``
  endpoint and only coerces what comes back.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

import requests
from requests import Response, Session

from ..config import API_KEY_ENV, AppConfig
from ..errors import (
    InvalidInput,
    MalformedResponse,
    QuotaExhausted,
    RateLimited,
    RemoteUnavailable,
    status_error,
)
from ..images import ScanImage
from ..schema import AnalysisResult, FindingStatus, coerce_flag, coerce_result
from .base import AnalysisProvider, CancelToken, ProviderInfo
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)

MIN_REGION_SIZE = 5.0
MAX_REGION_SIZE = 40.0
MAX_DIFFERENTIALS = 3

RESULT_SCHEMA_HINT = """{
  "scanType": "X-ray" | "MRI" | "CT" | "Ultrasound" | "Unknown",
  "imageQuality": "Good" | "Moderate" | "Poor",
  "status": "Normal" | "Abnormal" | "Uncertain",
  "overallConfidence": <number 0-100>,
  "urgencyLevel": "low" | "medium" | "high",
  "recommendation": "<string>",
  "suspectedConditions": [
    {"name": "<string>", "confidence": <number 0-100>, "description": "<string>"}
  ],
  "highlightedRegions": [
    {"id": "<string>", "location": "<string>", "description": "<string>",
     "x": <number 0-100>, "y": <number 0-100>, "width": <number 5-40>,
     "height": <number 5-40>, "severity": "low" | "medium" | "high"}
  ],
  "isUncertain": <boolean>,
  "isPoorQualityFailure": <boolean>,
  "differentialDiagnoses": [
    {"name": "<string>", "confidence": <number 0-100>, "evidence": ["<string>"]}
  ] | null
}"""

USER_INSTRUCTION = "Analyze this medical scan image. Return only the JSON structure as specified."


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences a model may wrap around its JSON answer."""
    return _FENCE_PATTERN.sub("", text).strip()


def parse_json_content(text: str) -> Any:
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as err:
        logger.error("Failed to parse model response: %r", cleaned[:500])
        raise MalformedResponse("AI returned invalid response format") from err


def _error_message(response: Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return response.text or None


class BaseRemoteProvider(AnalysisProvider):
    """Common functionality for providers backed by an HTTP service."""

    def __init__(
        self,
        *,
        identifier: str,
        display_name: str,
        description: str,
        backend: str,
        config: AppConfig | None,
        tags: Sequence[str],
    ) -> None:
        self._backend = backend
        self._config = config or AppConfig()
        self._info = ProviderInfo(
            identifier=identifier,
            display_name=display_name,
            description=description,
            tags=tuple(tags),
        )
        self._session: Session | None = None

    def info(self) -> ProviderInfo:
        return self._info

    def load(self) -> None:
        self._session = requests.Session()

    def analyze(
        self, image: ScanImage, *, cancel_token: CancelToken | None = None
    ) -> AnalysisResult:
        if image is None or not image.data:
            raise InvalidInput()
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        payload = self._request_analysis(image.to_data_uri())
        # The HTTP call cannot be interrupted; a late cancellation discards its answer.
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return self._build_result(payload)

    # ----- Backend dispatch ------------------------------------------------

    def _request_analysis(self, data_uri: str) -> Any:
        raise NotImplementedError

    def _build_result(self, payload: Any) -> AnalysisResult:
        return coerce_result(payload)

    # ----- HTTP helpers ----------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _session_post(self, url: str, payload: dict[str, Any]) -> Response:
        if self._session is None:
            raise RemoteUnavailable("HTTP session not initialised.")
        timeout = self._config.remote_timeout
        try:
            response = self._session.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise RemoteUnavailable(
                f"{self._backend} request timed out after {timeout}s."
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise RemoteUnavailable(f"Failed to contact {self._backend}: {exc}") from exc
        self._raise_for_status(response)
        return response

    def _raise_for_status(self, response: Response) -> None:
        if response.status_code < 400:
            return
        raise status_error(response.status_code, _error_message(response))

    def _json_body(self, response: Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponse(f"{self._backend} returned a non-JSON body.") from exc


class GatewayVisionProvider(BaseRemoteProvider):
    """Sends the scan to a vision-capable chat model and validates its JSON answer."""

    def __init__(self, config: AppConfig | None = None) -> None:
        super().__init__(
            identifier="remote.gateway",
            display_name="AI Vision Gateway",
            description=(
                "Analyses scans with a hosted multimodal model through an "
                "OpenAI-compatible chat-completion API."
            ),
            backend="AI gateway",
            config=config,
            tags=("remote", "vision", "http", "llm"),
        )

    def analyze_data_uri(self, data_uri: str) -> AnalysisResult:
        """Analyse an already encoded image; used by the HTTP endpoint."""
        if not data_uri:
            raise InvalidInput()
        return self._build_result(self._request_analysis(data_uri))

    # ----- Prompt creation -------------------------------------------------

    def build_prompt(self) -> str:
        instructions = [
            "You are an expert medical imaging AI assistant. Analyze the provided medical "
            "scan image and return a structured JSON response.",
            "Respond ONLY with valid JSON matching this exact structure, without Markdown "
            "or code fences:",
            RESULT_SCHEMA_HINT,
            "Rules:",
            "- If image quality is poor (photo of a screen, blurry, unreadable), set "
            'isPoorQualityFailure=true, status="Uncertain" and overallConfidence=0.',
            "- If uncertain, provide differentialDiagnoses with the top 3 possibilities "
            "ranked by confidence, most likely first.",
            "- highlightedRegions x/y/width/height are percentages of the image dimensions; "
            f"width and height must stay between {MIN_REGION_SIZE:g} and {MAX_REGION_SIZE:g}.",
            "- Be conservative: only flag abnormalities you are reasonably confident about.",
            "- Always include a clinical recommendation.",
            "- This is for clinical assistance only, not a final diagnosis.",
        ]
        return "\n".join(instructions)

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        api_key = self._config.resolved_api_key()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _request_analysis(self, data_uri: str) -> Any:
        if not self._config.resolved_api_key():
            raise RemoteUnavailable(f"{API_KEY_ENV} is not configured")
        endpoint = f"{self._config.remote_base_url}/chat/completions"
        payload = {
            "model": self._config.remote_model,
            "temperature": self._config.remote_temperature,
            "max_tokens": self._config.remote_max_tokens,
            "messages": [
                {"role": "system", "content": self.build_prompt()},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_INSTRUCTION},
                        {"type": "image_url", "image_url": {"url": data_uri}},
                    ],
                },
            ],
        }
        response = self._session_post(endpoint, payload)
        data = self._json_body(response)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise MalformedResponse("AI gateway returned an unexpected payload.") from exc
        if not isinstance(content, str):
            raise MalformedResponse("AI gateway returned an unexpected payload.")
        return parse_json_content(content)

    def _raise_for_status(self, response: Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 429:
            raise RateLimited()
        if status == 402:
            raise QuotaExhausted()
        logger.error("AI gateway error: %s %s", status, response.text[:500])
        raise RemoteUnavailable(f"AI gateway error: {status}", status_code=status)

    # ----- Policy enforcement ----------------------------------------------

    def _build_result(self, payload: Any) -> AnalysisResult:
        if isinstance(payload, Mapping) and coerce_flag(payload.get("isPoorQualityFailure")):
            payload = {**payload, "status": FindingStatus.UNCERTAIN.value, "overallConfidence": 0}
        return self.enforce_policy(coerce_result(payload))

    def enforce_policy(self, result: AnalysisResult) -> AnalysisResult:
        """Apply the triage rules the model was asked to follow."""
        threshold = self._config.remote_min_condition_confidence
        conditions = [
            condition.model_dump()
            for condition in result.suspected_conditions
            if condition.confidence >= threshold
        ]
        dropped = len(result.suspected_conditions) - len(conditions)
        if dropped:
            logger.info("Discarded %d low-confidence condition(s) below %d%%", dropped, threshold)

        regions = [
            {
                **region.model_dump(),
                "width": min(MAX_REGION_SIZE, max(MIN_REGION_SIZE, region.width)),
                "height": min(MAX_REGION_SIZE, max(MIN_REGION_SIZE, region.height)),
            }
            for region in result.highlighted_regions
        ]

        differentials = None
        if result.differential_diagnoses is not None:
            differentials = [
                item.model_dump() for item in result.differential_diagnoses[:MAX_DIFFERENTIALS]
            ]

        data = {
            **result.model_dump(),
            "suspected_conditions": conditions,
            "highlighted_regions": regions,
            "differential_diagnoses": differentials,
        }
        return AnalysisResult.model_validate(data)


class EndpointProvider(BaseRemoteProvider):
    """Client for a deployed ``analyze-scan`` endpoint."""

    def __init__(self, config: AppConfig | None = None) -> None:
        super().__init__(
            identifier="remote.endpoint",
            display_name="Analysis Endpoint",
            description="Sends scans to a MedScan analyze-scan endpoint over HTTP.",
            backend="analysis endpoint",
            config=config,
            tags=("remote", "http"),
        )

    def _request_analysis(self, data_uri: str) -> Any:
        response = self._session_post(self._config.endpoint_url, {"imageBase64": data_uri})
        return self._json_body(response)

    def _raise_for_status(self, response: Response) -> None:
        if response.status_code == 400:
            raise InvalidInput(_error_message(response))
        super()._raise_for_status(response)


def _register() -> None:
    ProviderRegistry.register(
        "remote.gateway", lambda config=None: GatewayVisionProvider(config=config)
    )
    ProviderRegistry.register("remote.endpoint", lambda config=None: EndpointProvider(config=config))


_register()
