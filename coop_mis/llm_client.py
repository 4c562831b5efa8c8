"""
LLM Client Module

REST client for an OpenAI-compatible chat completions endpoint.
Used by the loan eligibility analyzer to request structured JSON assessments.
"""

import httpx
import json
import logging
import time
from typing import Any, Dict, Optional

logger = logging.getLogger("coop_mis.llm")


class LLMClient:
    """REST client for structured LLM invocations"""

    def __init__(
        self,
        base_url: str = "",
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        enabled: bool = True
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        # No endpoint configured means the caller's rule-based fallback is used
        self.enabled = enabled and bool(self.base_url)
        self._client = httpx.Client(timeout=timeout)

    def invoke(self, prompt: str, response_json_schema: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Send a prompt and parse the JSON answer

        Args:
            prompt: Instruction text
            response_json_schema: JSON schema the answer must follow

        Returns:
            Parsed JSON object, or None when disabled or on any failure
        """
        if not self.enabled:
            return None

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        request = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": "Answer only with a JSON object."},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.2,
        }
        if response_json_schema:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": response_json_schema},
            }

        try:
            start = time.time()
            response = self._client.post(
                f"{self.base_url}/chat/completions",
                json=request,
                headers=headers
            )
            latency_ms = (time.time() - start) * 1000

            if response.status_code != 200:
                logger.warning(f"LLM returned {response.status_code}: {response.text}")
                return None

            content = response.json()["choices"][0]["message"]["content"]
            result = json.loads(content) if isinstance(content, str) else content
            if not isinstance(result, dict):
                logger.warning("LLM answer is not a JSON object")
                return None

            missing = [k for k in (response_json_schema or {}).get("required", []) if k not in result]
            if missing:
                logger.warning(f"LLM answer missing required fields: {missing}")
                return None

            logger.info(f"LLM invocation completed in {latency_ms:.0f}ms")
            return result

        except httpx.HTTPError as e:
            logger.error(f"LLM connection failed: {e}")
            return None
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"LLM returned an unreadable answer: {e}")
            return None

    def health_check(self) -> bool:
        """Check if the LLM endpoint answers"""
        if not self.enabled:
            return False
        try:
            r = self._client.get(f"{self.base_url}/models")
            return r.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"LLM health check failed: {e}")
            return False

    def close(self):
        """Close the HTTP client"""
        self._client.close()


class MockLLMClient(LLMClient):
    """Mock client for testing and demos, returns a canned answer"""

    def __init__(self, response: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(base_url="http://mock-llm", **kwargs)
        self.response = response
        self.prompts = []

    def invoke(self, prompt: str, response_json_schema: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        self.prompts.append(prompt)
        return dict(self.response) if self.response is not None else None

    def health_check(self) -> bool:
        return True
