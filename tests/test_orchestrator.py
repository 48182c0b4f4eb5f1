"""End-to-end tests for the repair orchestrator with a mocked LLM."""

import json
import time
import unittest
from unittest.mock import MagicMock, patch

import yaml

from lint_repair.config import Config, RepairConfig
from lint_repair.documents import dump_document
from lint_repair.errors import LintToolFailed, RewriteCallFailed
from lint_repair.llm.base import LLMClient
from lint_repair.llm.ollama import OllamaClient
from lint_repair.orchestrator import (
    Failed, NoIssuesFound, RepairOrchestrator, RepairRun, RepairState, Repaired,
)


ORIGINAL = {
    "openapi": "3.0.3",
    "info": {"title": "Shop", "version": "1.0.0"},
    "servers": [{"url": "https://api.example.com"}],
    "paths": {
        "/users": {"get": {"responses": {"200": {"description": "ok"}}}},
        "/orders": {"get": {"responses": {"200": {"description": "ok"}}}},
    },
    "components": {"schemas": {"User": {"type": "object"}}},
}
DOCUMENT = dump_document(ORIGINAL)


def _raw(severity, code, path, line):
    return {
        "severity": severity,
        "code": code,
        "message": f"{code} failed",
        "path": path,
        "range": {"start": {"line": line, "character": 2}, "end": {"line": line, "character": 9}},
    }


INFO_WARNING = _raw(1, "info-description", ["info"], 1)
USERS_ERROR = _raw(0, "operation-operationId", ["paths", "/users", "get"], 8)

INFO_FIX = """\
Sure, here you go:

```yaml
info:
  title: Shop
  version: 1.0.0
  description: Shop API
```
"""

USERS_FIX = """\
```yaml
paths:
  /users:
    get:
      operationId: listUsers
      responses:
        '200':
          description: ok
```
"""


class TestRepairScenarios(unittest.TestCase):
    def setUp(self):
        self.mock_llm = MagicMock(spec=LLMClient)
        self.orchestrator = RepairOrchestrator(self.mock_llm, RepairConfig(chunk_size=5))

    def test_two_regions_one_batch_each(self):
        self.mock_llm.generate_response.side_effect = [INFO_FIX, USERS_FIX]

        outcome = self.orchestrator.repair(DOCUMENT, [USERS_ERROR, INFO_WARNING])

        self.assertIsInstance(outcome, Repaired)
        self.assertEqual(self.mock_llm.generate_response.call_count, 2)
        self.assertEqual(outcome.rewrite_calls, 2)

        final = yaml.safe_load(outcome.final_text)
        self.assertEqual(final["info"]["description"], "Shop API")
        self.assertEqual(final["paths"]["/users"]["get"]["operationId"], "listUsers")
        for key in ("openapi", "servers", "components"):
            self.assertEqual(final[key], ORIGINAL[key])
            self.assertIn(dump_document({key: ORIGINAL[key]}), outcome.final_text)
        self.assertEqual(final["paths"]["/orders"], ORIGINAL["paths"]["/orders"])
        self.assertEqual(list(final), list(ORIGINAL))
        self.assertEqual(list(final["paths"]), ["/users", "/orders"])

        self.assertEqual(outcome.summary.status, "invalid")
        self.assertEqual(outcome.summary.error_count, 1)
        self.assertEqual(outcome.summary.warning_count, 1)

    def test_each_prompt_carries_only_its_region(self):
        self.mock_llm.generate_response.side_effect = [INFO_FIX, USERS_FIX]
        self.orchestrator.repair(DOCUMENT, [INFO_WARNING, USERS_ERROR])

        first, second = [c.args[0] for c in self.mock_llm.generate_response.call_args_list]
        self.assertIn("info-description", first)
        self.assertNotIn("/users", first)
        self.assertIn("/users", second)
        self.assertNotIn("/orders", second)
        self.assertNotIn("servers", second)

    def test_second_batch_sees_first_batch_fix(self):
        issues = [
            _raw(1, f"rule-{n}", ["paths", "/orders", "get"], 12 + n) for n in range(7)
        ]
        first_fix = """\
```yaml
paths:
  /orders:
    get:
      summary: List orders
      responses:
        '200':
          description: ok
```
"""
        second_fix = """\
```yaml
paths:
  /orders:
    get:
      summary: List orders
      operationId: listOrders
      responses:
        '200':
          description: ok
```
"""
        self.mock_llm.generate_response.side_effect = [first_fix, second_fix]

        outcome = self.orchestrator.repair(DOCUMENT, issues)

        self.assertIsInstance(outcome, Repaired)
        prompts = [c.args[0] for c in self.mock_llm.generate_response.call_args_list]
        self.assertEqual(len(prompts), 2)
        self.assertNotIn("List orders", prompts[0])
        self.assertIn("summary: List orders", prompts[1])
        self.assertEqual(sum("rule-" in line for line in prompts[0].splitlines()), 5)
        self.assertEqual(sum("rule-" in line for line in prompts[1].splitlines()), 2)

        final = yaml.safe_load(outcome.final_text)
        self.assertEqual(final["paths"]["/orders"]["get"]["operationId"], "listOrders")
        self.assertEqual(final["paths"]["/users"], ORIGINAL["paths"]["/users"])

    def test_json_document_stays_json(self):
        text = json.dumps(ORIGINAL, indent=2)
        self.mock_llm.generate_response.return_value = (
            '```json\n{"info": {"title": "Shop", "version": "1.0.0", "description": "d"}}\n```'
        )
        outcome = self.orchestrator.repair(text, [INFO_WARNING])
        self.assertIsInstance(outcome, Repaired)
        self.assertEqual(json.loads(outcome.final_text)["info"]["description"], "d")


class TestNoIssues(unittest.TestCase):
    def setUp(self):
        self.mock_llm = MagicMock(spec=LLMClient)
        self.orchestrator = RepairOrchestrator(self.mock_llm)

    def test_empty_list(self):
        outcome = self.orchestrator.repair(DOCUMENT, [])
        self.assertIsInstance(outcome, NoIssuesFound)
        self.assertEqual(outcome.original_text, DOCUMENT)
        self.assertEqual(outcome.summary.status, "valid")
        self.mock_llm.generate_response.assert_not_called()

    def test_blank_spectral_output(self):
        outcome = self.orchestrator.repair(DOCUMENT, "\n")
        self.assertIsInstance(outcome, NoIssuesFound)
        self.mock_llm.generate_response.assert_not_called()

    def test_original_text_returned_verbatim(self):
        text = "openapi: 3.0.3   # hand-written\ninfo: {title: A, version: '1'}\npaths: {}\n"
        outcome = self.orchestrator.repair(text, "[]")
        self.assertEqual(outcome.original_text, text)

    def test_lint_function_receives_bytes(self):
        lint = MagicMock(return_value="[]")
        outcome = self.orchestrator.repair(DOCUMENT, lint)
        self.assertIsInstance(outcome, NoIssuesFound)
        lint.assert_called_once_with(DOCUMENT.encode("utf-8"))


class TestFailures(unittest.TestCase):
    def setUp(self):
        self.mock_llm = MagicMock(spec=LLMClient)
        self.orchestrator = RepairOrchestrator(self.mock_llm)

    def test_rewrite_failure_on_second_region(self):
        self.mock_llm.generate_response.side_effect = [
            INFO_FIX,
            RewriteCallFailed("Ollama returned HTTP 500", status=500, body="model crashed"),
            USERS_FIX,
        ]

        outcome = self.orchestrator.repair(DOCUMENT, [INFO_WARNING, USERS_ERROR])

        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "rewrite_call_failed")
        self.assertEqual(outcome.context["region"], "paths./users")
        self.assertEqual(outcome.context["batch"], 1)
        self.assertEqual(outcome.context["status"], 500)
        self.assertEqual(outcome.context["body"], "model crashed")
        self.assertEqual(outcome.context["batchesCompleted"], 1)
        self.assertEqual(outcome.context["batchesTotal"], 2)
        self.assertEqual(outcome.context["state"], "repairing_region")
        self.assertEqual(self.mock_llm.generate_response.call_count, 2)
        self.assertNotIn("Shop API", json.dumps(outcome.to_dict()))
        self.assertFalse(hasattr(outcome, "final_text"))

    def test_stops_at_first_failure(self):
        self.mock_llm.generate_response.side_effect = ["no yaml here, sorry", INFO_FIX]
        outcome = self.orchestrator.repair(DOCUMENT, [USERS_ERROR, INFO_WARNING])
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "unparsable_rewrite")
        self.assertEqual(outcome.context["region"], "info")
        self.mock_llm.generate_response.assert_called_once()

    def test_rewrite_without_region(self):
        self.mock_llm.generate_response.return_value = "```yaml\ntitle: Shop\n```"
        outcome = self.orchestrator.repair(DOCUMENT, [INFO_WARNING])
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "unparsable_rewrite")

    def test_region_not_found_aborts(self):
        self.mock_llm.generate_response.return_value = INFO_FIX
        missing = _raw(0, "path-params", ["paths", "/missing", "get"], 0)
        outcome = self.orchestrator.repair(DOCUMENT, [missing, INFO_WARNING])
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "region_not_found")
        self.assertEqual(outcome.context["region"], "paths./missing")
        self.mock_llm.generate_response.assert_not_called()

    def test_malformed_issue_list(self):
        outcome = self.orchestrator.repair(DOCUMENT, "Spectral crashed: oops")
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "malformed_issue_list")
        self.assertEqual(outcome.context["state"], "normalizing")
        self.mock_llm.generate_response.assert_not_called()

    def test_malformed_document(self):
        outcome = self.orchestrator.repair("info: [unclosed\n", [INFO_WARNING])
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "malformed_document")

    def test_lint_tool_failure(self):
        lint = MagicMock(side_effect=LintToolFailed("Spectral executable not found: spectral"))
        outcome = self.orchestrator.repair(DOCUMENT, lint)
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "lint_failed")
        self.assertIn("not found", outcome.message)

    def test_non_object_llm_body_fails_the_run(self):
        client = OllamaClient("http://localhost:11434/api/generate", "llama3")
        orchestrator = RepairOrchestrator(client)
        response = MagicMock(status_code=200, text="[]")
        response.json.return_value = ["not", "an", "object"]
        with patch("lint_repair.llm.base.requests.post", return_value=response):
            outcome = orchestrator.repair(DOCUMENT, [INFO_WARNING])
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "rewrite_call_failed")
        self.assertEqual(outcome.context["region"], "info")

    def test_expired_deadline(self):
        outcome = self.orchestrator.repair(
            DOCUMENT, [INFO_WARNING], deadline=time.monotonic() - 1,
        )
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.reason, "timeout")
        self.assertEqual(outcome.context["region"], "info")
        self.mock_llm.generate_response.assert_not_called()

    def test_deadline_bounds_call_timeout(self):
        self.mock_llm.generate_response.return_value = INFO_FIX
        orchestrator = RepairOrchestrator(self.mock_llm, RepairConfig(request_timeout=600))
        outcome = orchestrator.repair(DOCUMENT, [INFO_WARNING], deadline=time.monotonic() + 30)
        self.assertIsInstance(outcome, Repaired)
        timeout = self.mock_llm.generate_response.call_args.kwargs["timeout"]
        self.assertTrue(0 < timeout <= 30)

    def test_config_timeout_without_deadline(self):
        self.mock_llm.generate_response.return_value = INFO_FIX
        orchestrator = RepairOrchestrator(self.mock_llm, RepairConfig(request_timeout=45))
        orchestrator.repair(DOCUMENT, [INFO_WARNING])
        self.assertEqual(self.mock_llm.generate_response.call_args.kwargs["timeout"], 45)


class TestRepairRun(unittest.TestCase):
    def test_states(self):
        mock_llm = MagicMock(spec=LLMClient)
        mock_llm.generate_response.return_value = INFO_FIX
        run = RepairRun(RepairOrchestrator(mock_llm), DOCUMENT)
        self.assertEqual(run.state, RepairState.IDLE)
        run.execute([INFO_WARNING])
        self.assertEqual(run.state, RepairState.DONE)
        self.assertEqual(run.batches_completed, 1)

    def test_runs_do_not_share_documents(self):
        mock_llm = MagicMock(spec=LLMClient)
        mock_llm.generate_response.return_value = INFO_FIX
        orchestrator = RepairOrchestrator(mock_llm)
        first = orchestrator.repair(DOCUMENT, [INFO_WARNING])
        second = orchestrator.repair(DOCUMENT, [INFO_WARNING])
        self.assertEqual(first.final_text, second.final_text)
        self.assertFalse(hasattr(orchestrator, "document"))


class TestRepairConfig(unittest.TestCase):
    def test_rejects_bad_chunk_size(self):
        with self.assertRaises(ValueError):
            RepairConfig(chunk_size=0)

    def test_rejects_unknown_format(self):
        with self.assertRaises(ValueError):
            RepairConfig(doc_format="toml")

    def test_from_env_overrides(self):
        config = RepairConfig.from_env(chunk_size=3, request_timeout=None)
        self.assertEqual(config.chunk_size, 3)

    def test_from_env_reads_environment_values(self):
        with patch.object(Config, "CHUNK_SIZE", "7"), patch.object(Config, "LLM_TIMEOUT", "12.5"):
            config = RepairConfig.from_env(chunk_size=None, request_timeout=None)
        self.assertEqual(config.chunk_size, 7)
        self.assertEqual(config.request_timeout, 12.5)

    def test_from_env_blank_timeout(self):
        with patch.object(Config, "LLM_TIMEOUT", "  "):
            self.assertIsNone(RepairConfig.from_env().request_timeout)

    def test_from_env_malformed_value(self):
        with patch.object(Config, "CHUNK_SIZE", "five"):
            with self.assertRaisesRegex(ValueError, "REPAIR_CHUNK_SIZE"):
                RepairConfig.from_env()

    def test_malformed_env_ignored_when_overridden(self):
        with patch.object(Config, "CHUNK_SIZE", "five"):
            config = RepairConfig.from_env(chunk_size=2)
        self.assertEqual(config.chunk_size, 2)


if __name__ == '__main__':
    unittest.main()
