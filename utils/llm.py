"""Claude API client for the completion service boundary."""

import logging
import os
import re
from dataclasses import dataclass

import anthropic

from core.errors import ServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    text: str
    input_tokens: int
    output_tokens: int


def get_client():
    """Return an Anthropic client. Raises ServiceError if no API key is set."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise ServiceError(
            "ANTHROPIC_API_KEY environment variable is not set. "
            "Get a key at https://console.anthropic.com/ and run:\n"
            "  export ANTHROPIC_API_KEY='your-key-here'"
        )
    return anthropic.Anthropic(api_key=api_key)


def call_llm(model, system_prompt, user_message, max_tokens):
    """One request/response round-trip to Claude.

    Returns a Completion with the response text and token usage. Any
    transport, auth or quota failure surfaces as ServiceError; this function
    never retries.
    """
    client = get_client()
    try:
        # Streaming avoids the SDK timeout for large max_tokens; the stream
        # is consumed fully before returning.
        text = ""
        with client.messages.stream(
            model=model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        ) as stream:
            for chunk in stream.text_stream:
                text += chunk
            message = stream.get_final_message()
    except anthropic.APIError as e:
        raise ServiceError(f"{model}: {e}") from e

    if message.stop_reason == "max_tokens":
        logger.warning("%s response hit the %d token limit; output is truncated", model, max_tokens)

    usage = message.usage
    return Completion(
        text=text.strip(),
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
    )


_FENCE_LINE = re.compile(r"^\s*```[\w.+-]*\s*$")


def strip_fences(text):
    """Drop markdown fence lines a model added despite instructions."""
    lines = [line for line in text.strip().split("\n") if not _FENCE_LINE.match(line)]
    return "\n".join(lines).strip()
