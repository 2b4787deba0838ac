"""
Generation Service Adapters
============================

Thin request/response wrappers over hosted LLM APIs, used by the
relevance gate (binary YES/NO, temperature 0) and by answer synthesis
(low temperature).

Backends:
    - OpenAI chat completions (gpt-4o-mini by default)
    - Google Gemini via google-genai (gemini-2.0-flash by default)

Any provider error, and any empty response, surfaces as
GenerationFailure. There is no retry-and-guess here; callers decide.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from citewise.config import CitewiseConfig
from citewise.errors import GenerationFailure

logger = logging.getLogger("citewise.answer.llm")


class GenerationService(Protocol):
    """Single-shot text generation."""

    def generate(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.0,
    ) -> str:
        ...


class OpenAIGenerationService:
    """
    Generation through the OpenAI chat completions API.

    Usage:
        llm = OpenAIGenerationService(api_key="sk-...")
        text = llm.generate("Question: ...", system_prompt="You are ...", temperature=0.1)

    Args:
        api_key: OpenAI API key.
        model: Chat model name.
        max_tokens: Cap on generated tokens per call.
        timeout_s: Per-request timeout.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        max_tokens: int = 800,
        timeout_s: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self._client = None

    def _get_client(self):
        """Lazy-initialize the OpenAI client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout_s)
        return self._client

    def generate(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.0,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=self.max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise GenerationFailure(f"OpenAI call failed ({self.model}): {e}") from e

        if not content or not content.strip():
            raise GenerationFailure(f"OpenAI returned an empty response ({self.model})")
        return content


class GeminiGenerationService:
    """
    Generation through Google Gemini (google-genai SDK).

    System and user prompts are passed as a system instruction and the
    content respectively.

    Args:
        api_key: Google AI API key.
        model: Gemini model name.
        max_tokens: Cap on generated tokens per call.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.0-flash",
        max_tokens: int = 800,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = None

    def _get_client(self):
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            from google import genai
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def generate(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.0,
    ) -> str:
        config = {
            "temperature": temperature,
            "max_output_tokens": self.max_tokens,
        }
        if system_prompt:
            config["system_instruction"] = system_prompt

        try:
            response = self._get_client().models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=config,
            )
            content = response.text
        except Exception as e:
            raise GenerationFailure(f"Gemini call failed ({self.model}): {e}") from e

        if not content or not content.strip():
            raise GenerationFailure(f"Gemini returned an empty response ({self.model})")
        return content


def build_generation_service(config: CitewiseConfig) -> GenerationService:
    """
    Pick a generation backend from config.

    Priority order:
        1. Gemini API key → GeminiGenerationService
        2. OpenAI API key → OpenAIGenerationService

    Raises:
        ValueError: If no API key is configured.
    """
    max_tokens = config.generation.max_output_tokens
    if config.gemini_api_key:
        logger.info(f"Using Gemini generation ({config.gemini_model})")
        return GeminiGenerationService(
            api_key=config.gemini_api_key, model=config.gemini_model, max_tokens=max_tokens
        )
    if config.openai_api_key:
        logger.info(f"Using OpenAI generation ({config.openai_model})")
        return OpenAIGenerationService(
            api_key=config.openai_api_key, model=config.openai_model, max_tokens=max_tokens
        )
    raise ValueError(
        "No generation backend configured. Set CITEWISE_GEMINI_API_KEY "
        "or CITEWISE_OPENAI_API_KEY."
    )
