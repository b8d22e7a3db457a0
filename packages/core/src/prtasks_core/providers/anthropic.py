from __future__ import annotations

from prtasks_core.errors import OracleError, OracleUnavailableError
from prtasks_core.providers.base import BaseOracle, translate_sdk_error


class AnthropicOracle(BaseOracle):
    MODEL = "claude-sonnet-4-20250514"
    # Low temperature: task extraction wants stable JSON more than varied phrasing.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str):
        try:
            import anthropic
        except ImportError:
            raise OracleUnavailableError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prtasks[anthropic]'"
            )
        self._sdk = anthropic
        self.client = anthropic.Anthropic(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.MODEL,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()

    def _translate_error(self, error: Exception) -> OracleError:
        return translate_sdk_error(self._sdk, error)
