"""
Repair orchestrator — drives the region-at-a-time repair loop.

A run moves through ``idle → normalizing → partitioning →
repairing_region* → finalizing → done``, or drops to ``failed`` on the first
error.  Batches run strictly in sequence: each extraction must see the fixes
merged by every earlier batch.  There are no retries, and a failed run never
hands back the half-merged document.
"""

from __future__ import annotations

import argparse
import enum
import json
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .agents.fixer import FixerAgent
from .cli_display import configure_logging, log, token_tracker
from .config import Config, RepairConfig
from .documents import detect_format, dump_document, load_document
from .editing.region_editor import IssueBatch, RegionEditor
from .errors import RepairError, RepairTimeout, RewriteCallFailed
from .issues import IssueSummary, RawIssues, normalize_issues, summarize
from .lint.spectral import SpectralLinter
from .llm.base import LLMClient
from .llm.lm_studio import LMStudioClient
from .llm.ollama import OllamaClient

logger = logging.getLogger(__name__)

LintFunction = Callable[[bytes], RawIssues]
IssuesSource = Union[RawIssues, LintFunction]


class RepairState(enum.Enum):
    IDLE = "idle"
    NORMALIZING = "normalizing"
    PARTITIONING = "partitioning"
    REPAIRING_REGION = "repairing_region"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass
class NoIssuesFound:
    original_text: str
    summary: IssueSummary = field(default_factory=IssueSummary)

    def to_dict(self) -> dict:
        return {"outcome": "no_issues_found", **self.summary.to_dict()}


@dataclass
class Repaired:
    final_text: str
    summary: IssueSummary
    rewrite_calls: int = 0

    def to_dict(self) -> dict:
        return {
            "outcome": "repaired",
            "rewriteCalls": self.rewrite_calls,
            **self.summary.to_dict(),
        }


@dataclass
class Failed:
    """Terminal failure; *context* says where the run stopped."""
    reason: str
    context: dict = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.context.get("detail", self.reason)

    def to_dict(self) -> dict:
        return {"outcome": "failed", "reason": self.reason, "context": self.context}


RepairOutcome = Union[NoIssuesFound, Repaired, Failed]


# ---------------------------------------------------------------------------
# RepairRun
# ---------------------------------------------------------------------------

class RepairRun:
    """State of one repair run.  Owns its document; never shared between runs."""

    def __init__(self, orchestrator: "RepairOrchestrator", document_text: str,
                 deadline: Optional[float] = None):
        self.orchestrator = orchestrator
        self.document_text = document_text
        self.deadline = deadline
        self.state = RepairState.IDLE
        self.document: Any = None
        self.summary: Optional[IssueSummary] = None
        self.batch: Optional[IssueBatch] = None
        self.batches_total = 0
        self.batches_completed = 0
        self.rewrite_calls = 0

    def _enter(self, state: RepairState) -> None:
        logger.debug("[Orchestrator] %s -> %s", self.state.value, state.value)
        self.state = state

    def execute(self, issues_source: IssuesSource) -> RepairOutcome:
        try:
            return self._execute(issues_source)
        except RepairError as e:
            return self._fail(e)

    def _execute(self, issues_source: IssuesSource) -> RepairOutcome:
        orch = self.orchestrator
        doc_format = orch.config.doc_format or detect_format(self.document_text)

        self._enter(RepairState.NORMALIZING)
        issues = normalize_issues(self._raw_issues(issues_source))
        self.summary = summarize(issues)
        if not issues:
            logger.info("[Orchestrator] No issues found, returning document unchanged")
            self._enter(RepairState.DONE)
            return NoIssuesFound(self.document_text, self.summary)

        self.document = load_document(self.document_text, doc_format)

        self._enter(RepairState.PARTITIONING)
        batches = orch.editor.partition(issues)
        self.batches_total = len(batches)
        logger.info(
            "[Orchestrator] %d issue(s) in %d batch(es) (%d error(s), %d warning(s))",
            len(issues), len(batches), self.summary.error_count, self.summary.warning_count,
        )

        fixer = FixerAgent(orch.llm_client, doc_format=doc_format)
        for batch in batches:
            self.batch = batch
            self._enter(RepairState.REPAIRING_REGION)
            self._repair_batch(fixer, batch, doc_format)
            self.batches_completed += 1

        self.batch = None
        self._enter(RepairState.FINALIZING)
        final_text = dump_document(self.document, doc_format)
        self._enter(RepairState.DONE)
        logger.info("[Orchestrator] Repaired %d batch(es) with %d rewrite call(s)",
                    self.batches_completed, self.rewrite_calls)
        return Repaired(final_text, self.summary, self.rewrite_calls)

    def _raw_issues(self, issues_source: IssuesSource) -> RawIssues:
        if callable(issues_source):
            return issues_source(self.document_text.encode("utf-8"))
        return issues_source

    def _repair_batch(self, fixer: FixerAgent, batch: IssueBatch, doc_format: str) -> None:
        editor = self.orchestrator.editor
        logger.info("[Orchestrator] Repairing %s (%d issue(s))", batch.label, len(batch.issues))

        region = editor.extract(self.document, batch.region)
        region_text = dump_document(region, doc_format)

        timeout = self._call_timeout()
        self.rewrite_calls += 1
        fixed = fixer.process(region_text, batch, timeout=timeout)
        editor.merge(self.document, batch.region, fixed)

    def _call_timeout(self) -> Optional[float]:
        timeout = self.orchestrator.config.request_timeout
        if self.deadline is None:
            return timeout
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise RepairTimeout("Deadline expired before the next rewrite call")
        return remaining if timeout is None else min(timeout, remaining)

    def _fail(self, error: RepairError) -> Failed:
        context = {
            "state": self.state.value,
            "detail": error.message,
            "batchesCompleted": self.batches_completed,
            "batchesTotal": self.batches_total,
            "rewriteCalls": self.rewrite_calls,
        }
        if self.batch is not None:
            context["region"] = str(self.batch.region)
            context["batch"] = self.batch.index + 1
            context["regionBatches"] = self.batch.total
        elif error.region is not None:
            context["region"] = error.region
        if isinstance(error, RewriteCallFailed):
            context["status"] = error.status
            context["body"] = error.body
        if self.summary is not None:
            context["issues"] = self.summary.to_dict()

        self._enter(RepairState.FAILED)
        where = f" at {self.batch.label}" if self.batch is not None else ""
        logger.error("[Orchestrator] Repair stopped%s: %s (%s)", where, error.message, error.reason)
        return Failed(error.reason, context)


# ---------------------------------------------------------------------------
# RepairOrchestrator
# ---------------------------------------------------------------------------

class RepairOrchestrator:
    """Repairs documents with an LLM, one region batch at a time.

    Holds only configuration and collaborators, so a single instance can
    serve concurrent runs.
    """

    def __init__(self, llm_client: LLMClient, config: Optional[RepairConfig] = None):
        self.llm_client = llm_client
        self.config = config or RepairConfig()
        self.editor = RegionEditor(
            chunk_size=self.config.chunk_size,
            collection_fields=self.config.collection_fields,
        )

    def repair(self, document_text: str, issues_source: IssuesSource,
               deadline: Optional[float] = None) -> RepairOutcome:
        """Repair *document_text* against the issues from *issues_source*.

        *issues_source* is raw lint output (a list or Spectral JSON text) or
        a lint function called with the document bytes.  *deadline* is an
        absolute ``time.monotonic()`` value.
        """
        return RepairRun(self, document_text, deadline).execute(issues_source)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def build_llm_client(provider: str, model: str) -> LLMClient:
    if provider == "ollama":
        return OllamaClient(base_url=Config.OLLAMA_BASE_URL, model=model)
    return LMStudioClient(base_url=Config.LM_STUDIO_BASE_URL, model=model)


def _issues_source(args) -> IssuesSource:
    if args.issues:
        with open(args.issues, "r", encoding="utf-8") as f:
            return f.read()
    return SpectralLinter(ruleset=args.ruleset, executable=Config.SPECTRAL_BIN)


def _validate(args, document_text: str) -> int:
    source = _issues_source(args)
    try:
        raw = source(document_text.encode("utf-8")) if callable(source) else source
        summary = summarize(normalize_issues(raw))
    except RepairError as e:
        print(json.dumps({"summary": {"status": "error", "message": e.message},
                          "issues": [], "reason": e.reason}, indent=2))
        return 2
    print(json.dumps(summary.to_dict(), indent=2))
    return 1 if summary.status == "invalid" else 0


def _repair(args, document_text: str) -> int:
    try:
        config = RepairConfig.from_env(chunk_size=args.chunk_size, request_timeout=args.timeout)
    except ValueError as e:
        print(json.dumps({"outcome": "failed", "reason": "invalid_config",
                          "context": {"detail": str(e)}}, indent=2))
        return 2
    orchestrator = RepairOrchestrator(build_llm_client(args.provider, args.model), config)
    deadline = time.monotonic() + args.deadline if args.deadline else None

    outcome = orchestrator.repair(document_text, _issues_source(args), deadline=deadline)
    log.info(token_tracker.summary())

    if isinstance(outcome, Failed):
        print(json.dumps(outcome.to_dict(), indent=2))
        return 2

    text = outcome.original_text if isinstance(outcome, NoIssuesFound) else outcome.final_text
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        log.info(f"Written: {args.output}")
    else:
        sys.stdout.write(text)
    print(json.dumps(outcome.to_dict(), indent=2), file=sys.stderr)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Lint-driven OpenAPI repair")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p):
        p.add_argument("file", help="OpenAPI document (YAML or JSON)")
        p.add_argument("--issues", help="Spectral JSON report to use instead of running spectral")
        p.add_argument("--ruleset", default=Config.SPECTRAL_RULESET, help="Spectral ruleset path")
        p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    validate = sub.add_parser("validate", help="Lint the document and print the issue summary")
    add_common(validate)

    repair = sub.add_parser("repair", help="Repair the document region by region")
    add_common(repair)
    repair.add_argument("--provider", choices=["ollama", "lm_studio"], default="ollama", help="The LLM provider to use")
    repair.add_argument("--model", default=Config.DEFAULT_MODEL, help="The model name to use")
    repair.add_argument("--chunk-size", type=int, default=None, help="Max issues per rewrite call")
    repair.add_argument("--timeout", type=float, default=None, help="Per-call LLM timeout in seconds")
    repair.add_argument("--deadline", type=float, default=None, help="Overall time limit in seconds")
    repair.add_argument("-o", "--output", help="Write the repaired document here instead of stdout")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    with open(args.file, "r", encoding="utf-8") as f:
        document_text = f.read()

    if args.command == "validate":
        return _validate(args, document_text)
    return _repair(args, document_text)


if __name__ == "__main__":
    sys.exit(main())
