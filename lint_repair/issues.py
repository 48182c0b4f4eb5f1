"""
Issue normalization — turns raw Spectral results into uniform ``Issue`` records.

Spectral reports severities as integers and locations as a key path plus a
0-based source range.  Everything downstream works with the normalized form.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

from .errors import MalformedIssueList

logger = logging.getLogger(__name__)

SEVERITY_NAMES = {
    0: "error",
    1: "warn",
    2: "info",
    3: "hint",
}

RawIssues = Union[str, bytes, Sequence[Any]]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Location:
    line: int       # 1-indexed
    character: int  # 1-indexed


@dataclass(frozen=True)
class Issue:
    """One normalized lint finding."""
    severity: str
    rule: str
    message: str
    segments: tuple = ()  # keys/indices from the document root
    location: Optional[Location] = None

    @property
    def path(self) -> str:
        return ".".join(str(s) for s in self.segments)

    @property
    def line(self) -> int:
        return self.location.line if self.location else 0

    def to_dict(self) -> dict:
        data = {
            "severity": self.severity,
            "rule": self.rule,
            "message": self.message,
            "path": self.path,
        }
        if self.location is not None:
            data["location"] = {
                "line": self.location.line,
                "character": self.location.character,
            }
        return data


@dataclass
class IssueSummary:
    status: str = "valid"
    error_count: int = 0
    warning_count: int = 0
    total_issues: int = 0
    issues: list[Issue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "summary": {
                "status": self.status,
                "errorCount": self.error_count,
                "warningCount": self.warning_count,
                "totalIssues": self.total_issues,
            },
            "issues": [i.to_dict() for i in self.issues],
        }


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_issues(raw: RawIssues) -> list[Issue]:
    """Normalize raw lint output into issues sorted by line.

    *raw* is either the list Spectral produces or its JSON text.  Blank
    text means Spectral found nothing.  Raises ``MalformedIssueList`` if
    any part of the input does not have the expected shape.
    """
    items = _load_raw(raw)
    issues = [_normalize_one(idx, item) for idx, item in enumerate(items)]
    # Stable: issues on the same line keep lint order.
    issues.sort(key=lambda i: i.line)
    logger.debug("[Issues] Normalized %d issue(s)", len(issues))
    return issues


def summarize(issues: Sequence[Issue]) -> IssueSummary:
    summary = IssueSummary(issues=list(issues), total_issues=len(issues))
    for issue in issues:
        if issue.severity == "error":
            summary.error_count += 1
        elif issue.severity == "warn":
            summary.warning_count += 1

    if summary.error_count > 0:
        summary.status = "invalid"
    elif summary.warning_count > 0:
        summary.status = "valid_with_warnings"
    return summary


def _load_raw(raw: RawIssues) -> list:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedIssueList(f"Lint output is not UTF-8: {e}") from e

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedIssueList(f"Failed to parse lint output: {e}") from e

    if isinstance(raw, (str, bytes, dict)) or not isinstance(raw, Sequence):
        raise MalformedIssueList(
            f"Expected a list of issues, got {type(raw).__name__}"
        )
    return list(raw)


def _normalize_one(idx: int, item: Any) -> Issue:
    if not isinstance(item, dict):
        raise MalformedIssueList(f"Issue #{idx} is not an object")

    path = item.get("path", [])
    if isinstance(path, (str, bytes)) or not isinstance(path, Sequence):
        raise MalformedIssueList(f"Issue #{idx} has a non-list path: {path!r}")

    severity = item.get("severity")
    severity_name = "unknown"
    if isinstance(severity, float) and severity.is_integer():
        severity = int(severity)
    if isinstance(severity, int) and not isinstance(severity, bool):
        severity_name = SEVERITY_NAMES.get(severity, "unknown")

    return Issue(
        severity=severity_name,
        rule=str(item.get("code", "")),
        message=str(item.get("message", "")),
        segments=tuple(path),
        location=_location(idx, item.get("range")),
    )


def _location(idx: int, rng: Any) -> Optional[Location]:
    if rng is None:
        return None
    try:
        start = rng["start"]
        return Location(
            line=int(start["line"]) + 1,
            character=int(start["character"]) + 1,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedIssueList(f"Issue #{idx} has a malformed range: {rng!r}") from e
