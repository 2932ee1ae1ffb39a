"""Prepper-backed configuration loader for Pageshift."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    ConfigNotFound,
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import TranslationProviderConfigurationError

APP_NAME = "Pageshift"

_TRUE_VALUES = {"1", "true", "yes", "on"}

REQUIRED_CREDENTIALS = {
    "openai": ("OPENAI_API_KEY",),
    "azure_openai": (
        "AZURE_OPENAI_API_KEY",
        "AZURE_OPENAI_ENDPOINT",
        "AZURE_OPENAI_API_VERSION",
        "AZURE_OPENAI_DEPLOYMENT_NAME",
    ),
}


def split_patterns(value: Any) -> List[str]:
    """Accept a list or a comma/newline separated string of whitelist patterns."""

    if value is None:
        return []
    if isinstance(value, str):
        raw = value.replace("\n", ",").split(",")
    else:
        raw = [str(item) for item in value]
    return [item.strip() for item in raw if item and item.strip()]


class PageshiftConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LLM_PROVIDER: Literal["azure_openai", "openai"] = Field(
        default="openai",
        description="Large language model provider selection.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    OPENAI_MODEL: str | None = Field(default=None)
    PAGESHIFT_PROVIDER: Literal["openai", "echo"] = Field(
        default="openai",
        description="Translator used for page and selection translation.",
    )
    PAGESHIFT_DETECTOR: Literal["langdetect", "none"] = Field(
        default="langdetect",
        description="Language detector used to guess the source language.",
    )
    AUTO_TRANSLATE_ENABLED: bool = Field(default=False)
    AUTO_TRANSLATE_TARGET_LANG: str = Field(default="zh-Hans")
    SELECTION_TRANSLATE_ENABLED: bool = Field(default=False)
    WHITELIST_PATTERNS: List[str] = Field(default=[])
    PAGESHIFT_LOG_MODE: Literal["off", "info", "debug"] = Field(default="info")
    PAGESHIFT_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_values(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LLM_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                synonyms = {
                    "azure_open_ai": "azure_openai",
                    "azureopenai": "azure_openai",
                }
                normalized = synonyms.get(normalized, normalized)
                if normalized not in {"openai", "azure_openai"}:
                    normalized = "openai"
                data["LLM_PROVIDER"] = normalized
            for key in ("PAGESHIFT_PROVIDER", "PAGESHIFT_DETECTOR", "PAGESHIFT_LOG_MODE"):
                if isinstance(data.get(key), str):
                    data[key] = data[key].strip().lower()
            if "WHITELIST_PATTERNS" in data:
                data["WHITELIST_PATTERNS"] = split_patterns(data["WHITELIST_PATTERNS"])
            for key in (
                "AUTO_TRANSLATE_ENABLED",
                "SELECTION_TRANSLATE_ENABLED",
                "PAGESHIFT_PROVIDER_DEBUG",
            ):
                if isinstance(data.get(key), str):
                    data[key] = data[key].strip().lower() in _TRUE_VALUES
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=PageshiftConfig,
        )

        model = PageshiftConfig.validate(combined, provenance=provenance)
        _validate_provider_settings(model)

        instance = ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=PageshiftConfig,
        )
        return instance
    except ConfigNotFound as exc:
        raise TranslationProviderConfigurationError(
            "No configuration sources were found. Provide settings via a home YAML "
            "file, a local config.yaml, a .env file, or environment variables."
        ) from exc
    except IoError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration schema error: {exc}"
        ) from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise TranslationProviderConfigurationError(issues) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None:
                continue
            if key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def _validate_provider_settings(settings: Any) -> None:
    """Check that the selected LLM backend has its credentials.

    Only the ``openai`` translator needs them; ``echo`` runs without any.
    """

    if settings.PAGESHIFT_PROVIDER != "openai":
        return

    provider = settings.LLM_PROVIDER
    missing = [
        name
        for name in REQUIRED_CREDENTIALS.get(provider, ())
        if not getattr(settings, name, None)
    ]
    if missing:
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n"
            f"- LLM_PROVIDER '{provider}' requires: {', '.join(missing)}."
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> PageshiftConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
