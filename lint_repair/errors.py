"""
Failure taxonomy for repair runs.

Every error carries a stable ``reason`` code.  Library code raises these;
only the orchestrator turns them into a ``Failed`` outcome.
"""

from __future__ import annotations

from typing import Optional


class RepairError(RuntimeError):
    """Base class for everything that can stop a repair run."""

    reason = "repair_error"

    def __init__(self, message: str, *, region: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.region = region


class MalformedIssueList(RepairError):
    """Lint output could not be read as a list of issues."""

    reason = "malformed_issue_list"


class MalformedDocument(RepairError):
    """The uploaded document is not valid YAML/JSON."""

    reason = "malformed_document"


class RegionNotFound(RepairError):
    reason = "region_not_found"


class RewriteCallFailed(RepairError):
    """The rewrite backend failed at the HTTP or network level."""

    reason = "rewrite_call_failed"

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
        region: Optional[str] = None,
    ):
        super().__init__(message, region=region)
        self.status = status
        self.body = body


class UnparsableRewrite(RepairError):
    reason = "unparsable_rewrite"


class RepairTimeout(RepairError):
    reason = "timeout"


class LintToolFailed(RepairError):
    """The lint tool itself could not run (as opposed to finding issues)."""

    reason = "lint_failed"
