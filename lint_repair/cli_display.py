"""Shared logger and LLM token accounting for the CLI and the LLM clients."""

from __future__ import annotations

import logging
import sys
import threading

log = logging.getLogger("lint_repair")


class TokenTracker:
    """Accumulates token usage reported by the LLM backends."""

    def __init__(self):
        self._lock = threading.Lock()
        self.calls = 0
        self.prompt_tokens = 0
        self.completion_tokens = 0

    def record(self, prompt_tokens: int, completion_tokens: int) -> None:
        with self._lock:
            self.calls += 1
            self.prompt_tokens += prompt_tokens
            self.completion_tokens += completion_tokens

    def reset(self) -> None:
        with self._lock:
            self.calls = 0
            self.prompt_tokens = 0
            self.completion_tokens = 0

    def summary(self) -> str:
        total = self.prompt_tokens + self.completion_tokens
        return (
            f"{self.calls} LLM call(s), {total} tokens "
            f"(prompt={self.prompt_tokens}, completion={self.completion_tokens})"
        )


token_tracker = TokenTracker()


def configure_logging(verbose: bool = False) -> None:
    """Send ``lint_repair`` logs to stderr; DEBUG when *verbose*."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    log.handlers[:] = [handler]
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    log.propagate = False
