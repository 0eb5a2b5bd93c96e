import json
from types import SimpleNamespace

import pytest
import requests
from medscan.config import API_KEY_ENV, AppConfig
from medscan.errors import (
    AnalysisCancelled,
    InvalidInput,
    MalformedResponse,
    QuotaExhausted,
    RateLimited,
    RemoteUnavailable,
)
from medscan.images import ScanImage
from medscan.providers.base import CancelToken
from medscan.providers.remote import (
    EndpointProvider,
    GatewayVisionProvider,
    parse_json_content,
    strip_code_fences,
)
from medscan.schema import FindingStatus
from PIL import Image

DATA_URI = "data:image/jpeg;base64,AAAA"


class DummyResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class RecordingSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.response


def _chat_response(content):
    return DummyResponse(body={"choices": [{"message": {"content": content}}]})


def _gateway(response, **config):
    provider = GatewayVisionProvider(AppConfig(remote_api_key="secret", **config))
    provider._session = RecordingSession(response)
    return provider


ABNORMAL_ANSWER = {
    "scanType": "X-ray",
    "imageQuality": "Good",
    "status": "Abnormal",
    "overallConfidence": 82,
    "urgencyLevel": "high",
    "recommendation": "Refer to pulmonology.",
    "suspectedConditions": [
        {"name": "Pneumothorax", "confidence": 78, "description": "Absent lung markings."},
        {"name": "Rib fracture", "confidence": 12, "description": "Possible cortical break."},
    ],
    "highlightedRegions": [
        {
            "id": "r1",
            "location": "Right apex",
            "x": 60,
            "y": 10,
            "width": 70,
            "height": 2,
            "severity": "high",
        }
    ],
    "isUncertain": False,
    "isPoorQualityFailure": False,
    "differentialDiagnoses": None,
}


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'


def test_parse_json_content_rejects_prose():
    with pytest.raises(MalformedResponse) as excinfo:
        parse_json_content("I think this is a chest X-ray.")
    assert str(excinfo.value) == "AI returned invalid response format"


def test_headers_include_api_key():
    provider = GatewayVisionProvider(AppConfig(remote_api_key="secret"))
    assert provider._headers()["Authorization"] == "Bearer secret"


def test_prompt_mentions_policy_rules():
    prompt = GatewayVisionProvider(AppConfig()).build_prompt()
    assert "isPoorQualityFailure" in prompt
    assert "differentialDiagnoses" in prompt
    assert "top 3" in prompt


def test_gateway_request_shape():
    provider = _gateway(_chat_response(json.dumps(ABNORMAL_ANSWER)))

    provider.analyze_data_uri(DATA_URI)

    url, kwargs = provider._session.calls[0]
    assert url == "https://ai.gateway.lovable.dev/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    messages = kwargs["json"]["messages"]
    assert messages[0]["role"] == "system"
    image_part = messages[1]["content"][1]
    assert image_part == {"type": "image_url", "image_url": {"url": DATA_URI}}
    assert kwargs["json"]["model"] == "google/gemini-2.5-pro"


def test_gateway_enforces_policy():
    provider = _gateway(_chat_response("```json\n" + json.dumps(ABNORMAL_ANSWER) + "\n```"))

    result = provider.analyze_data_uri(DATA_URI)

    assert result.status == FindingStatus.ABNORMAL
    assert [c.name for c in result.suspected_conditions] == ["Pneumothorax"]
    region = result.highlighted_regions[0]
    assert region.width == 40
    assert region.height == 5
    assert result.differential_diagnoses is None


def test_gateway_poor_quality_answer_is_forced_uncertain():
    answer = {
        "scanType": "Unknown",
        "imageQuality": "Poor",
        "status": "Abnormal",
        "overallConfidence": 64,
        "isPoorQualityFailure": True,
        "differentialDiagnoses": [
            {"name": "A", "confidence": 10, "evidence": []},
            {"name": "B", "confidence": 40, "evidence": ["x"]},
            {"name": "C", "confidence": 30, "evidence": ["y"]},
            {"name": "D", "confidence": 20, "evidence": ["z"]},
        ],
    }
    provider = _gateway(_chat_response(json.dumps(answer)))

    result = provider.analyze_data_uri(DATA_URI)

    assert result.status == FindingStatus.UNCERTAIN
    assert result.is_poor_quality_failure is True
    assert result.overall_confidence == 0
    assert [item.name for item in result.differential_diagnoses] == ["B", "C", "D"]


def test_gateway_requires_api_key(monkeypatch):
    monkeypatch.delenv(API_KEY_ENV, raising=False)
    provider = GatewayVisionProvider(AppConfig())
    provider.load()

    with pytest.raises(RemoteUnavailable) as excinfo:
        provider.analyze_data_uri(DATA_URI)
    assert API_KEY_ENV in str(excinfo.value)


@pytest.mark.parametrize(
    ("status", "error_type"),
    [(429, RateLimited), (402, QuotaExhausted), (503, RemoteUnavailable)],
)
def test_gateway_maps_http_status(status, error_type):
    provider = _gateway(DummyResponse(status_code=status, body={"error": "nope"}))

    with pytest.raises(error_type) as excinfo:
        provider.analyze_data_uri(DATA_URI)
    assert excinfo.value.status_code == status


def test_gateway_rejects_unexpected_envelope():
    provider = _gateway(DummyResponse(body={"choices": []}))

    with pytest.raises(MalformedResponse):
        provider.analyze_data_uri(DATA_URI)


def test_session_post_handles_timeout():
    class TimeoutSession:
        @staticmethod
        def post(*args, **kwargs):
            raise requests.exceptions.Timeout()

    provider = GatewayVisionProvider(AppConfig(remote_api_key="secret"))
    provider._session = TimeoutSession()

    with pytest.raises(RemoteUnavailable) as excinfo:
        provider._session_post("http://example", {})
    assert "timed out" in str(excinfo.value)


def test_session_post_handles_connection_error():
    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    provider = EndpointProvider(AppConfig())
    provider._session = SimpleNamespace(post=refuse)

    with pytest.raises(RemoteUnavailable):
        provider._session_post("http://example", {})


def test_analyze_checks_cancellation_before_request():
    provider = _gateway(_chat_response(json.dumps(ABNORMAL_ANSWER)))
    token = CancelToken()
    token.cancel()
    image = ScanImage.from_pil(Image.new("RGB", (8, 8)), source="upload")

    with pytest.raises(AnalysisCancelled):
        provider.analyze(image, cancel_token=token)
    assert provider._session.calls == []


def test_analyze_rejects_empty_image():
    provider = _gateway(_chat_response("{}"))
    with pytest.raises(InvalidInput):
        provider.analyze(ScanImage(data=b""))


def test_endpoint_provider_posts_data_uri():
    payload = {**ABNORMAL_ANSWER, "analysisTimestamp": "2024-05-01T00:00:00Z"}
    provider = EndpointProvider(AppConfig(endpoint_url="https://scan.example/analyze-scan"))
    provider._session = RecordingSession(DummyResponse(body=payload))
    image = ScanImage.from_pil(Image.new("RGB", (8, 8)), source="upload")

    result = provider.analyze(image)

    url, kwargs = provider._session.calls[0]
    assert url == "https://scan.example/analyze-scan"
    assert kwargs["json"]["imageBase64"].startswith("data:image/jpeg;base64,")
    assert len(result.suspected_conditions) == 2


def test_endpoint_provider_maps_bad_request():
    provider = EndpointProvider(AppConfig())
    provider._session = RecordingSession(
        DummyResponse(status_code=400, body={"error": "No image data provided"})
    )
    image = ScanImage.from_pil(Image.new("RGB", (8, 8)), source="upload")

    with pytest.raises(InvalidInput) as excinfo:
        provider.analyze(image)
    assert str(excinfo.value) == "No image data provided"


def test_endpoint_provider_maps_rate_limit_with_body_message():
    provider = EndpointProvider(AppConfig())
    provider._session = RecordingSession(
        DummyResponse(status_code=429, body={"error": "Slow down"})
    )
    image = ScanImage.from_pil(Image.new("RGB", (8, 8)), source="upload")

    with pytest.raises(RateLimited) as excinfo:
        provider.analyze(image)
    assert str(excinfo.value) == "Slow down"


@pytest.mark.parametrize("flag", ["true", "yes", "1", 1])
def test_gateway_poor_quality_flag_spelled_loosely(flag):
    answer = {
        "status": "Abnormal",
        "overallConfidence": 71,
        "isPoorQualityFailure": flag,
        "differentialDiagnoses": [{"name": "A", "confidence": 35, "evidence": ["blur"]}],
    }
    provider = _gateway(_chat_response(json.dumps(answer)))

    result = provider.analyze_data_uri(DATA_URI)

    assert result.status == FindingStatus.UNCERTAIN
    assert result.is_poor_quality_failure is True
    assert result.overall_confidence == 0
    assert [item.name for item in result.differential_diagnoses] == ["A"]


def test_gateway_accepts_fewer_than_three_differentials():
    answer = {
        "status": "Uncertain",
        "overallConfidence": 40,
        "differentialDiagnoses": [
            {"name": "Atelectasis", "confidence": 30, "evidence": []},
            {"name": "Pneumonia", "confidence": 45, "evidence": ["opacity"]},
        ],
    }
    provider = _gateway(_chat_response(json.dumps(answer)))

    result = provider.analyze_data_uri(DATA_URI)

    assert [item.name for item in result.differential_diagnoses] == ["Pneumonia", "Atelectasis"]
