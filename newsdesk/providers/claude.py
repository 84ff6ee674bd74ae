"""Claude enrichment backend (Anthropic Messages API)."""

import logging
from typing import Optional

import anthropic

from newsdesk.models import ARTICLE, EnrichmentResult
from newsdesk.processing.prompts import PromptBuilder, parse_enrichment
from newsdesk.providers.base import EmptyResponseError

logger = logging.getLogger(__name__)


class ClaudeProvider:
    name = "claude"

    def __init__(
        self,
        api_key: str,
        model: str,
        prompts: PromptBuilder,
        max_output_tokens: int = 2048,
        client: Optional[anthropic.Anthropic] = None,
    ):
        self.model = model
        self.prompts = prompts
        self.max_output_tokens = max_output_tokens
        self.api_key = api_key
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        """One user turn, raw text back. SDK errors propagate."""
        kwargs = {}
        if system:
            kwargs["system"] = system
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_output_tokens,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()
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
        logger.debug(f"  [Claude] {self.model} answered {len(text)} chars for: {title[:50]}")
        return parse_enrichment(text, style=style, content_kind=content_kind)
