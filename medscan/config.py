"""Application-wide configuration models and persistence helpers."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

API_KEY_ENV = "MEDSCAN_API_KEY"


class AppConfig(BaseModel):
    """Validates and stores runtime settings for the application."""

    provider_name: str = Field(
        default="builtin.heuristic",
        description="Identifier of the analysis provider used for new sessions.",
    )
    heuristic_delay: float = Field(
        default=2.0,
        ge=0.0,
        le=30.0,
        description="Simulated processing time (seconds) of the heuristic provider.",
    )
    heuristic_seed: int | None = Field(
        default=None,
        description="Optional random seed making the heuristic provider reproducible.",
    )
    remote_base_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        description="Base URL of the OpenAI-compatible chat-completion gateway.",
    )
    remote_model: str = Field(
        default="google/gemini-2.5-pro",
        description="Vision-capable model requested from the gateway.",
    )
    remote_api_key: str | None = Field(
        default=None,
        description=f"Bearer token for the gateway. Falls back to ${API_KEY_ENV}.",
    )
    remote_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature passed to the gateway.",
    )
    remote_max_tokens: int = Field(
        default=2048,
        ge=64,
        le=8192,
        description="Maximum number of tokens requested from the gateway.",
    )
    remote_timeout: float = Field(
        default=90.0,
        ge=1.0,
        le=600.0,
        description="Timeout (seconds) for HTTP calls to remote analysis services.",
    )
    remote_min_condition_confidence: int = Field(
        default=25,
        ge=0,
        le=100,
        description="Suspected conditions reported below this confidence are discarded.",
    )
    endpoint_url: str = Field(
        default="http://127.0.0.1:8000/analyze-scan",
        description="URL of a deployed analyze-scan endpoint used by the endpoint provider.",
    )
    server_host: str = Field(
        default="127.0.0.1",
        description="Interface the analyze-scan endpoint binds to.",
    )
    server_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port the analyze-scan endpoint listens on.",
    )
    report_directory: Path | None = Field(
        default=None,
        description="Default directory offered when exporting reports.",
    )

    @model_validator(mode="after")
    def _normalise_remote_settings(self) -> AppConfig:
        for field_name in ("remote_base_url", "endpoint_url"):
            value = getattr(self, field_name).strip()
            if not value:
                raise ValueError(f"{field_name} must not be empty.")
            if "://" not in value:
                raise ValueError(
                    f"{field_name} must include a scheme such as https://example.com."
                )
            setattr(self, field_name, value.rstrip("/"))
        return self

    def resolved_api_key(self) -> str | None:
        """Return the configured gateway key, falling back to the environment."""
        return self.remote_api_key or os.getenv(API_KEY_ENV) or None

    def as_dict(self) -> dict[str, Any]:
        """Serialize the configuration to primitive Python types."""
        payload = self.model_dump(mode="json")
        if self.report_directory is not None:
            payload["report_directory"] = str(self.report_directory)
        return payload

    @classmethod
    def load(cls, path: Path) -> AppConfig:
        """Load configuration from a YAML or JSON file."""
        data = _read_config_file(path)
        try:
            return cls.model_validate(data)
        except ValidationError as exc:  # pragma: no cover - pass through details
            raise ValueError(f"Invalid configuration file at {path}: {exc}") from exc

    def save(self, path: Path) -> None:
        """Persist configuration to a YAML file."""
        _write_config_file(path, self.as_dict())


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text) or {}
    return json.loads(text)


def _write_config_file(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in {".yaml", ".yml"}:
        yaml_text = yaml.safe_dump(
            data,
            allow_unicode=False,
            sort_keys=False,
        )
        path.write_text(yaml_text, encoding="utf-8")
    else:
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
