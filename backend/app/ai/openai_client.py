from __future__ import annotations

from dataclasses import dataclass

from openai import AsyncOpenAI


class AIUnavailableError(RuntimeError):
    """Raised when no API key is configured for text generation."""


@dataclass(frozen=True)
class Completion:
    text: str
    tokens_in: int
    tokens_out: int

    @property
    def tokens_used(self) -> int:
        return self.tokens_in + self.tokens_out


class OpenAIClient:
    """Thin wrapper above the OpenAI async SDK that refuses to run without a key."""

    def __init__(self, api_key: str | None, *, timeout: float | None = None) -> None:
        self._api_key = api_key
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout) if api_key else None

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        *,
        model: str,
        prompt: str,
        max_tokens: int,
        system_prompt: str,
        json_mode: bool = True,
    ) -> Completion:
        if not self._client:
            raise AIUnavailableError("OPENAI_API_KEY is not configured")

        tokens_in = max(1, int(len(prompt.split()) * 1.2))

        request: dict[str, object] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        completion = await self._client.chat.completions.create(**request)
        message = completion.choices[0].message.content or ""
        usage = completion.usage
        if usage is not None:
            tokens_in = int(getattr(usage, "prompt_tokens", tokens_in) or tokens_in)
            tokens_out = int(getattr(usage, "completion_tokens", 0) or 0)
        else:
            tokens_out = max(1, int(len(message.split()) * 1.2))
        return Completion(message.strip(), tokens_in, tokens_out)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
