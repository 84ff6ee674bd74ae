"""The enrichment capability shared by every AI backend."""

from typing import Optional, Protocol

from newsdesk.models import EnrichmentResult


class EmptyResponseError(RuntimeError):
    """The model answered without any text."""


class EnrichmentProvider(Protocol):
    name: str

    def enrich(
        self,
        body: str,
        title: str,
        style: str,
        content_kind: str = "article",
        is_deep_dive: bool = False,
    ) -> EnrichmentResult:
        ...

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        ...


def build_provider(name: str, cfg: dict, prompts) -> EnrichmentProvider:
    """Construct the named backend from config."""
    if name == "claude":
        from newsdesk.providers.claude import ClaudeProvider

        return ClaudeProvider(
            cfg.get("anthropic_api_key", ""),
            cfg["claude_model"],
            prompts,
            max_output_tokens=cfg.get("max_output_tokens", 2048),
        )
    if name == "gemini":
        from newsdesk.providers.gemini import GeminiProvider

        return GeminiProvider(
            cfg.get("gemini_api_key", ""),
            cfg["gemini_model"],
            prompts,
            max_output_tokens=cfg.get("max_output_tokens", 2048),
        )
    raise ValueError(f"Unknown provider: {name}")
