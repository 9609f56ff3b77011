"""Text-completion adapter for the inference service.

Gemini models are reached through Google's OpenAI-compatible endpoint, so the
``openai`` SDK is the only client needed.
"""

from __future__ import annotations

from config import GEMINI_OPENAI_BASE_URL

try:
    from openai import OpenAI
except Exception:  # pragma: no cover
    OpenAI = None  # type: ignore


class OpenAIInferenceService:
    def __init__(
        self,
        api_key: str,
        base_url: str = GEMINI_OPENAI_BASE_URL,
        request_timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._request_timeout_s = request_timeout_s
        self._client = None

    def _get_client(self):
        if self._client is None:
            if OpenAI is None:
                raise RuntimeError("openai is not installed")
            self._client = OpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._request_timeout_s,
                max_retries=0,
            )
        return self._client

    def complete(self, model: str, prompt: str) -> str:
        response = self._get_client().chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            stream=False,
            temperature=0,
        )
        return (response.choices[0].message.content or "").strip()
