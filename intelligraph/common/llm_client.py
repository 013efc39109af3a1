"""
Provider-agnostic generative client for the IntelliGraph pipeline.

Supports Google Gemini, OpenAI and Anthropic behind one
``generate(prompt) -> text`` call. Query refinement and answer synthesis
both go through this client.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

logger = logging.getLogger("intelligraph.common.llm_client")

SUPPORTED_PROVIDERS = ("google", "openai", "anthropic")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "google",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "google").lower()
        self.model = model
        self._client = None
        self._google_models = {}

        if self.provider not in SUPPORTED_PROVIDERS:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        api_key = {
            "google": google_api_key,
            "openai": openai_api_key,
            "anthropic": anthropic_api_key,
        }[self.provider]
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        try:
            self._client = getattr(self, f"_init_{self.provider}")(api_key)
        except ImportError as e:
            logger.warning("%s SDK not installed: %s", self.provider, e)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client from an LLMConfig section"""
        return cls(
            provider=llm_config.provider,
            model=llm_config.model,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            openai_api_key=llm_config.openai_api_key or None,
            google_api_key=llm_config.google_api_key or None,
        )

    @staticmethod
    def _init_google(api_key: str):
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        return genai  # Store the module, models are built per system prompt

    @staticmethod
    def _init_openai(api_key: str):
        from openai import OpenAI

        return OpenAI(api_key=api_key)

    @staticmethod
    def _init_anthropic(api_key: str):
        import anthropic

        return anthropic.Anthropic(api_key=api_key)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 30.0,
    ) -> str:
        """Generate text for a prompt.

        Raises:
            RuntimeError: if no provider client is configured
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "google":
            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            model = self._google_models[cache_key]
            response = model.generate_content(
                prompt,
                generation_config={"max_output_tokens": max_tokens},
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        if self.provider == "openai":
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=messages,
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        kwargs = {}
        if system:
            kwargs["system"] = system
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **kwargs,
        )
        return response.content[0].text.strip()
