"""Loading of the JSON routing document."""

from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import ValidationError

from multiroom.models.routing_models import RoutingConfig

log = structlog.get_logger(__name__)

DEFAULT_ROUTING_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "multi-provider-routing.json"


class RoutingConfigError(ValueError):
    """The routing document is missing, unreadable or invalid."""


def load_routing_config(path: str | Path | None = None) -> RoutingConfig:
    """Read and validate a routing document (packaged default when `path` is None)."""
    config_path = Path(path) if path else DEFAULT_ROUTING_CONFIG_PATH
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise RoutingConfigError(f"Cannot read routing config {config_path}: {e}") from e

    try:
        config = RoutingConfig.model_validate_json(raw)
    except ValidationError as e:
        raise RoutingConfigError(f"Invalid routing config {config_path}: {e}") from e

    log.info(
        "routing_config_loaded",
        path=str(config_path),
        providers=len(config.providers),
        keyword_rules=len(config.routing_rules.keyword_to_provider),
    )
    return config
