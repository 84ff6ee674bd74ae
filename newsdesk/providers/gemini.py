"""Gemini enrichment backend (google-genai SDK)."""

import logging
from typing import Optional

from google import genai
from google.genai import types

from newsdesk.models import ARTICLE, EnrichmentResult
from newsdesk.processing.prompts import PromptBuilder, parse_enrichment
from newsdesk.providers.base import EmptyResponseError

logger = logging.getLogger(__name__)


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        prompts: PromptBuilder,
        max_output_tokens: int = 2048,
        client: Optional[genai.Client] = None,
    ):
        self.model = model
        self.prompts = prompts
        self.max_output_tokens = max_output_tokens
        self.api_key = api_key
        self._client = client

    @property
    def client(self) -> genai.Client:
        # genai.Client refuses to construct without a key; defer until first use
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        config = types.GenerateContentConfig(
            system_instruction=system or None,
            max_output_tokens=self.max_output_tokens,
            temperature=0.7,
        )
        response = self.client.models.generate_content(
            model=self.model, contents=prompt, config=config
        )
        text = (response.text or "").strip()
        if not text:
            raise EmptyResponseError(f"Empty response from {self.model}")
        return text

    def enrich(
        self,
        body: str,
        title: str,
        style: str,
        content_kind: str = ARTICLE,
        is_deep_dive: bool = False,
    ) -> EnrichmentResult:
        prompt = self.prompts.build_enrichment(body, title, style, content_kind, is_deep_dive)
        text = self.complete(prompt.user, system=prompt.system)
        logger.debug(f"  [Gemini] {self.model} answered {len(text)} chars for: {title[:50]}")
        return parse_enrichment(text, style=style, content_kind=content_kind)
