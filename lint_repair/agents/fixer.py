"""
Fixer agent — the rewrite adapter between a region and the LLM.

The prompt carries one region's text plus the issues of one batch, nothing
else from the document.  The reply is read with a two-path contract:

1. the first fenced code block tagged with the document format (or untagged);
2. failing that, the whole reply, trimmed.

Whatever is extracted must load as a mapping in the document format,
otherwise the rewrite is rejected with ``UnparsableRewrite``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from .base import Agent
from ..documents import load_document
from ..editing.region_editor import IssueBatch
from ..errors import MalformedDocument, UnparsableRewrite
from ..llm.base import LLMClient

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r"```([\w+-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)

_FORMAT_TAGS = {
    "yaml": ("yaml", "yml"),
    "json": ("json",),
}


class FixerAgent(Agent):
    def __init__(
        self,
        llm_client: LLMClient,
        doc_format: str = "yaml",
        name: str = "Fixer",
        role: str = "Senior API Designer",
        goal: str = "Fix the reported lint issues in an OpenAPI fragment without changing anything else.",
    ):
        super().__init__(name, role, goal, llm_client)
        self.doc_format = doc_format

    def build_prompt(self, region_text: str, batch: IssueBatch) -> str:
        issue_lines = []
        for n, issue in enumerate(batch.issues, 1):
            where = f"path `{issue.path or '(document root)'}`"
            if issue.location is not None:
                where += f", line {issue.location.line}"
            issue_lines.append(
                f"  {n}. [{issue.severity}] {issue.rule}: {issue.message} ({where})"
            )

        lang = self.doc_format
        context = (
            f"OpenAPI fragment for region `{batch.region}`:\n"
            f"```{lang}\n{region_text.rstrip()}\n```"
        )
        task = "Fix these lint issues:\n" + "\n".join(issue_lines)
        prompt = self._build_prompt(task, context)
        prompt += f"""

Rules:
- Return the COMPLETE corrected fragment, with the same top-level keys as the input.
- Keep every key, value and ordering that is not involved in the issues above.
- Do not rename the region keys (`{batch.region}`).
- Wrap the fragment in a single ```{lang} ... ``` block and add nothing else.
"""
        return prompt

    def parse_response(self, raw_text: str) -> Any:
        """Extract and load the corrected fragment from *raw_text*."""
        content = self.extract_content(raw_text)
        if not content:
            raise UnparsableRewrite("Rewrite response is empty")
        try:
            fragment = load_document(content, self.doc_format)
        except MalformedDocument as e:
            raise UnparsableRewrite(f"Rewrite is not valid {self.doc_format}: {e.message}") from e
        if not isinstance(fragment, dict):
            raise UnparsableRewrite(
                f"Rewrite is a {type(fragment).__name__}, expected a mapping"
            )
        return fragment

    def extract_content(self, raw_text: str) -> str:
        accepted = _FORMAT_TAGS.get(self.doc_format, (self.doc_format,))
        for m in _CODE_BLOCK.finditer(raw_text or ""):
            tag = m.group(1).lower()
            if not tag or tag in accepted:
                return m.group(2).strip()
        logger.debug("[Fixer] No %s code block in response, using full text", self.doc_format)
        return (raw_text or "").strip()

    def process(self, region_text: str, batch: IssueBatch,
                timeout: Optional[float] = None) -> Any:
        prompt = self.build_prompt(region_text, batch)
        raw = self.llm_client.generate_response(prompt, timeout=timeout)
        return self.parse_response(raw)
