from __future__ import annotations

try:
    import openai as _openai
except ImportError:
    _openai = None  # type: ignore[assignment]

from prtasks_core.errors import OracleError, OracleUnavailableError
from prtasks_core.providers.base import BaseOracle, translate_sdk_error


class OpenAIOracle(BaseOracle):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str):
        if _openai is None:
            raise OracleUnavailableError(
                "The 'openai' package is required for this provider. Install it with: pip install 'prtasks[openai]'"
            )
        self.client = _openai.OpenAI(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        return response.choices[0].message.content or ""

    def _translate_error(self, error: Exception) -> OracleError:
        return translate_sdk_error(_openai, error)
