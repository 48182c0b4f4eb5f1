from typing import Optional

from .base import LLMClient, post_json
from ..cli_display import token_tracker, log
from ..errors import RewriteCallFailed


class LMStudioClient(LLMClient):
    def __init__(self, base_url: str, model: str, temperature: float = 0.2):
        self.base_url = base_url
        self.model = model
        self.temperature = temperature

    def generate_response(self, prompt: str, timeout: Optional[float] = None) -> str:
        est_tokens = int(len(prompt.split()) * 1.3)
        log.debug(f"[LM Studio] Sending ~{est_tokens} est. tokens")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": "You are an expert OpenAPI editor."},
                {"role": "user", "content": prompt}
            ],
            "temperature": self.temperature
        }
        headers = {
            "Content-Type": "application/json"
        }
        # LM Studio uses /v1/chat/completions endpoint structure
        url = f"{self.base_url}/chat/completions"
        data = post_json(url, payload, "LM Studio", timeout=timeout, headers=headers)

        usage = data.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", est_tokens)
        completion_tokens = usage.get("completion_tokens", 0)
        token_tracker.record(
            prompt_tokens if isinstance(prompt_tokens, int) else est_tokens,
            completion_tokens if isinstance(completion_tokens, int) else 0
        )
        log.debug(f"[LM Studio] Usage: prompt={prompt_tokens} completion={completion_tokens}")
        try:
            response_text = data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise RewriteCallFailed(f"Unexpected response shape from LM Studio: {e}") from e
        log.debug(f"[LM Studio] Response:\n{response_text}")

        return response_text
