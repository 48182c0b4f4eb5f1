from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..errors import RepairTimeout, RewriteCallFailed


class LLMClient(ABC):
    @abstractmethod
    def generate_response(self, prompt: str, timeout: Optional[float] = None) -> str:
        """Return the completion for *prompt*.

        Raises ``RewriteCallFailed`` on HTTP/network errors and
        ``RepairTimeout`` when *timeout* seconds elapse first.
        """
        pass


def post_json(url: str, payload: dict, backend: str,
              timeout: Optional[float] = None, headers: Optional[dict] = None) -> dict:
    """POST *payload* and return the decoded JSON body, mapping failures to repair errors."""
    try:
        response = requests.post(url, json=payload, headers=headers, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.Timeout as e:
        raise RepairTimeout(f"{backend} did not answer within {timeout}s") from e
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        body = e.response.text if e.response is not None else None
        raise RewriteCallFailed(
            f"{backend} returned HTTP {status}", status=status, body=body,
        ) from e
    except requests.exceptions.RequestException as e:
        raise RewriteCallFailed(f"Error communicating with {backend}: {e}") from e
    except ValueError as e:
        raise RewriteCallFailed(f"{backend} returned a non-JSON body: {e}") from e

    if not isinstance(data, dict):
        raise RewriteCallFailed(
            f"{backend} returned a JSON {type(data).__name__}, expected an object",
        )
    return data
