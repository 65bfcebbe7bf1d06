"""Test helpers: fake OpenAI payloads and config copies."""

from types import SimpleNamespace

import httpx
import openai

VALID_KEY = "sk-test-key-1234567890abcdefghij"


def make_completion(content="This is a test response", prompt_tokens=10, completion_tokens=20):
    """Build an object shaped like an OpenAI chat completion."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(role="assistant", content=content))],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens
        )
    )


def make_status_error(error_cls, status_code, message):
    """Build an openai APIStatusError subclass instance."""
    request = httpx.Request("GET", "https://api.openai.com/v1/models")
    response = httpx.Response(status_code, request=request)
    return error_cls(message, response=response, body=None)


def make_connection_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.APIConnectionError(request=request)


def with_overrides(base, **sections):
    """Copy a frozen config, replacing fields inside the named sections."""
    update = {}
    for name, fields in sections.items():
        if isinstance(fields, dict):
            update[name] = getattr(base, name).model_copy(update=fields)
        else:
            update[name] = fields
    return base.model_copy(update=update)
