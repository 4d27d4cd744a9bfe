from types import SimpleNamespace

import pytest

from backend.app.ai.openai_client import AIUnavailableError, OpenAIClient


@pytest.mark.anyio
async def test_openai_client_without_key_raises() -> None:
    client = OpenAIClient(api_key=None)
    assert client.available is False

    with pytest.raises(AIUnavailableError):
        await client.complete(
            model="gpt-4o-mini",
            prompt="Summarise my week",
            max_tokens=120,
            system_prompt="json only",
        )

    await client.close()


class _FakeCompletions:
    def __init__(self, usage) -> None:
        self.usage = usage
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='  {"overview": "ok"}  '))],
            usage=self.usage,
        )


class _FakeClient:
    def __init__(self, usage) -> None:
        self.completions = _FakeCompletions(usage)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.mark.anyio
async def test_openai_client_stubbed_reads_usage() -> None:
    client = OpenAIClient(api_key="fake")
    fake = _FakeClient(SimpleNamespace(prompt_tokens=12, completion_tokens=18))
    client._client = fake  # type: ignore[attr-defined]

    completion = await client.complete(
        model="gpt-4o-mini",
        prompt="Need help",
        max_tokens=60,
        system_prompt="json only",
    )

    assert completion.text == '{"overview": "ok"}'
    assert (completion.tokens_in, completion.tokens_out) == (12, 18)
    assert completion.tokens_used == 30
    request = fake.completions.requests[0]
    assert request["response_format"] == {"type": "json_object"}
    assert request["messages"][0] == {"role": "system", "content": "json only"}


@pytest.mark.anyio
async def test_openai_client_plain_mode_without_usage() -> None:
    client = OpenAIClient(api_key="fake")
    fake = _FakeClient(None)
    client._client = fake  # type: ignore[attr-defined]

    completion = await client.complete(
        model="gpt-4o-mini",
        prompt="one two three",
        max_tokens=60,
        system_prompt="sys",
        json_mode=False,
    )

    assert "response_format" not in fake.completions.requests[0]
    assert completion.tokens_out >= 1
