"""Run the Spectral CLI on a document and hand back its raw JSON report."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from typing import Optional

from ..errors import LintToolFailed, RepairTimeout

logger = logging.getLogger(__name__)


class SpectralLinter:
    """Callable lint function: ``(document bytes) -> raw JSON issue text``."""

    def __init__(self, ruleset: str = ".spectral.yaml", executable: str = "spectral",
                 timeout: Optional[float] = None):
        self.ruleset = os.path.abspath(ruleset)
        self.executable = executable
        self.timeout = timeout

    def __call__(self, document: bytes, suffix: str = ".yaml") -> str:
        return self.lint(document, suffix=suffix)

    def lint(self, document: bytes, suffix: str = ".yaml") -> str:
        try:
            fd, path = tempfile.mkstemp(prefix="lint_repair_", suffix=suffix)
        except OSError as e:
            raise LintToolFailed(f"Could not create a temporary file for spectral: {e}") from e
        try:
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(document)
            except OSError as e:
                raise LintToolFailed(f"Could not write the document for spectral: {e}") from e
            return self._run(path)
        finally:
            try:
                os.unlink(path)
            except OSError as e:
                logger.warning("[Spectral] Failed to delete temporary file %s: %s", path, e)

    def _run(self, path: str) -> str:
        cmd = [
            self.executable, "lint", path,
            "--ruleset", self.ruleset,
            "--format=json",
        ]
        logger.info("[Spectral] Executing: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, check=False, timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise LintToolFailed(f"Spectral executable not found: {self.executable}") from e
        except subprocess.TimeoutExpired as e:
            raise RepairTimeout(f"Spectral did not finish within {self.timeout}s") from e
        except OSError as e:
            raise LintToolFailed(f"Could not run spectral ({self.executable}): {e}") from e

        # Spectral exits 1 whenever it reports issues, so the exit code
        # alone does not mean the tool failed.
        if result.stderr.strip() and not result.stdout.strip():
            logger.error("[Spectral] Execution error: %s", result.stderr.strip())
            raise LintToolFailed(f"Failed to run spectral validation: {result.stderr.strip()}")

        return result.stdout if result.stdout.strip() else "[]"
