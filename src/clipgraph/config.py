"""Runtime settings, read from the environment.

Recognised variables:
    CLIPGRAPH_PATH        data directory (default ~/.clipgraph)
    CLIPGRAPH_OWNER       owner used when a caller does not name one
    CLIPGRAPH_THRESHOLD   similarity threshold in (0, 1)
    CLIPGRAPH_MODEL       sentence-transformers model name
    CLIPGRAPH_EMBEDDINGS  "on"/"off": compute embeddings for clips without one
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field

from .constants import (
    DB_FILENAME,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_OWNER_ID,
    DEFAULT_SIMILARITY_THRESHOLD,
    LOG_FILENAME,
)
from .errors import ValidationError
from .similarity import validate_threshold

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class Settings(BaseModel):
    """Resolved configuration for one process."""

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".clipgraph")
    owner_id: str = DEFAULT_OWNER_ID
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embeddings_enabled: bool = True

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILENAME

    @property
    def log_path(self) -> Path:
        return self.data_dir / LOG_FILENAME


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValidationError(f"{name} must be on/off, got {raw!r}")


def _parse_threshold(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as e:
        raise ValidationError(f"CLIPGRAPH_THRESHOLD is not a number: {raw!r}") from e
    return validate_threshold(value)


def load_settings(env: Mapping[str, str] | None = None, **overrides) -> Settings:
    """Build Settings from environment variables plus explicit overrides.

    Overrides with value None are ignored, so CLI options can be passed
    through unconditionally.

    Raises:
        ValidationError: If a variable holds an invalid value.
    """
    if env is None:
        env = os.environ

    values: dict = {}
    if path := env.get("CLIPGRAPH_PATH"):
        values["data_dir"] = Path(path).expanduser()
    if owner := env.get("CLIPGRAPH_OWNER"):
        values["owner_id"] = owner
    if threshold := env.get("CLIPGRAPH_THRESHOLD"):
        values["threshold"] = _parse_threshold(threshold)
    if model := env.get("CLIPGRAPH_MODEL"):
        values["embedding_model"] = model
    if enabled := env.get("CLIPGRAPH_EMBEDDINGS"):
        values["embeddings_enabled"] = _parse_bool("CLIPGRAPH_EMBEDDINGS", enabled)

    for key, value in overrides.items():
        if value is not None:
            values[key] = value
    if "threshold" in values:
        values["threshold"] = validate_threshold(values["threshold"])

    return Settings(**values)
