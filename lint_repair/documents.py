"""Load and dump OpenAPI documents in their source format (YAML or JSON)."""

from __future__ import annotations

import json
from typing import Any, Optional

import yaml

from .errors import MalformedDocument

FORMATS = ("yaml", "json")


def detect_format(text: str) -> str:
    """JSON documents start with ``{`` or ``[``; everything else is YAML."""
    stripped = text.lstrip()
    if stripped.startswith(("{", "[")):
        return "json"
    return "yaml"


def load_document(text: str, doc_format: Optional[str] = None) -> Any:
    doc_format = doc_format or detect_format(text)
    try:
        if doc_format == "json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise MalformedDocument(f"Invalid {doc_format.upper()} document: {e}") from e


def dump_document(document: Any, doc_format: str = "yaml") -> str:
    if doc_format == "json":
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    return yaml.safe_dump(
        document, sort_keys=False, allow_unicode=True, default_flow_style=False,
    )
