"""
External text generation over an OpenAI-compatible chat completions API.

A generator is any callable ``generate(prompt) -> str``. This module
provides the HTTP implementation used in production; tests pass plain
functions instead.
"""
import logging
from typing import Optional

import requests

from core.settings import (
    DEFAULT_TEXT_GENERATION_MODEL,
    DEFAULT_TEXT_GENERATION_URL,
    get_generation_timeout,
    get_setting,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Você é um especialista em educação básica e recomposição de aprendizagens. "
    "Responda sempre em português do Brasil e somente no formato solicitado."
)


class GenerationError(RuntimeError):
    """Text generation failed (network, HTTP status, or malformed response)."""


class ChatCompletionGenerator:
    """Single-attempt POST to ``/chat/completions`` with a bearer key."""

    def __init__(self, api_key: str, url: str = DEFAULT_TEXT_GENERATION_URL,
                 model: str = DEFAULT_TEXT_GENERATION_MODEL, timeout: float = 30,
                 temperature: float = 0.3, max_tokens: int = 3000):
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _payload(self, prompt: str) -> dict:
        return {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': prompt},
            ],
            'temperature': self.temperature,
            'max_tokens': self.max_tokens,
        }

    def __call__(self, prompt: str) -> str:
        headers = {
            'Authorization': f"Bearer {self.api_key}",
            'Content-Type': 'application/json',
        }
        try:
            response = requests.post(
                self.url,
                json=self._payload(prompt),
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout as e:
            raise GenerationError(f"text generation timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            raise GenerationError(f"text generation HTTP {e.response.status_code}") from e
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"text generation request failed: {e}") from e
        except ValueError as e:
            raise GenerationError("text generation returned invalid JSON") from e

        try:
            content = result['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError("text generation response has no content") from e
        if not isinstance(content, str) or not content.strip():
            raise GenerationError("text generation returned empty content")
        return content


def get_default_generator() -> Optional[ChatCompletionGenerator]:
    """Generator configured from settings, or None without an API key."""
    api_key = get_setting('TEXT_GENERATION_API_KEY')
    if not api_key:
        logger.info("TEXT_GENERATION_API_KEY not set; remediation plans use the fallback")
        return None
    return ChatCompletionGenerator(
        api_key=api_key,
        url=get_setting('TEXT_GENERATION_URL', DEFAULT_TEXT_GENERATION_URL),
        model=get_setting('TEXT_GENERATION_MODEL', DEFAULT_TEXT_GENERATION_MODEL),
        timeout=get_generation_timeout(),
    )
