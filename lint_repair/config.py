import os
from dataclasses import dataclass
from typing import Optional, Tuple


class Config:
    OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/api/generate")
    LM_STUDIO_BASE_URL = os.getenv("LM_STUDIO_BASE_URL", "http://localhost:1234/v1")
    DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "deepseek-coder-v2-lite-instruct")
    CHUNK_SIZE = os.getenv("REPAIR_CHUNK_SIZE", "5")
    SPECTRAL_BIN = os.getenv("SPECTRAL_BIN", "spectral")
    SPECTRAL_RULESET = os.getenv("SPECTRAL_RULESET", ".spectral.yaml")
    LLM_TIMEOUT = os.getenv("LLM_TIMEOUT", "")


@dataclass(frozen=True)
class RepairConfig:
    """Settings for one :class:`~lint_repair.orchestrator.RepairOrchestrator`.

    Core code only ever sees this object; reading the environment happens
    at the edge through :meth:`from_env`.
    """

    chunk_size: int = 5
    # Top-level fields whose entries are repaired one at a time.
    collection_fields: Tuple[str, ...] = ("paths", "webhooks")
    # "yaml", "json" or None to detect from the document text.
    doc_format: Optional[str] = None
    request_timeout: Optional[float] = None

    def __post_init__(self):
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.doc_format not in (None, "yaml", "json"):
            raise ValueError(f"Unsupported document format: {self.doc_format!r}")

    @classmethod
    def from_env(cls, **overrides) -> "RepairConfig":
        """Build a config from ``Config``; non-None *overrides* win and skip the env lookup."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "chunk_size" not in values:
            values["chunk_size"] = _env_number("REPAIR_CHUNK_SIZE", Config.CHUNK_SIZE, int)
        if "request_timeout" not in values:
            values["request_timeout"] = _env_number("LLM_TIMEOUT", Config.LLM_TIMEOUT, float) or None
        return cls(**{k: v for k, v in values.items() if v is not None})


def _env_number(name: str, raw: str, kind):
    if not raw.strip():
        return None
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
