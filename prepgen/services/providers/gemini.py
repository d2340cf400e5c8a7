"""
Gemini backend (google-genai SDK).

Grounding uses the URL-context tool for explicit references and Google Search
for open research. Tool-enabled calls cannot be schema-constrained, so
structured output goes through a separate, tool-free JSON-mode request.
"""
import logging
import time
from typing import Any, List, Optional, Sequence

from google import genai
from google.genai import types

from prepgen.services.providers.base import (
    Capability,
    GenerationOptions,
    GroundedText,
    Provider,
)

logger = logging.getLogger(__name__)


def _extract_citations(response: Any) -> List[str]:
    """Collect unique web URIs from the grounding metadata of a Gemini response."""
    if not response.candidates:
        return []
    grounding_meta = response.candidates[0].grounding_metadata
    if grounding_meta is None:
        return []

    citations = []
    for chunk in getattr(grounding_meta, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None) if web else None
        if uri and uri not in citations:
            citations.append(uri)
    return citations


class GeminiProvider(Provider):
    service = "gemini"

    def __init__(self, name: str, client: genai.Client, model: str, grounding: bool = True):
        self.name = name
        self._client = client
        self.model = model
        capabilities = {Capability.STRUCTURED, Capability.REASONING}
        if grounding:
            capabilities.add(Capability.GROUNDING)
        self.capabilities = frozenset(capabilities)

    def _config(self, options: GenerationOptions, **extra) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
            system_instruction=options.system_prompt,
            **extra,
        )

    async def _generate(self, prompt: str, config: types.GenerateContentConfig, context: str) -> Any:
        logger.info(f"Gemini ({self.model}) call started for {context}")
        start_time = time.perf_counter()
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=config,
        )
        elapsed = time.perf_counter() - start_time
        logger.info(f"Gemini ({self.model}) call completed in {elapsed:.2f}s for {context}")
        return response

    async def complete(self, prompt: str, options: GenerationOptions) -> str:
        response = await self._generate(prompt, self._config(options), "text")
        return response.text or ""

    async def complete_json(self, prompt: str, schema_hint: str, options: GenerationOptions) -> str:
        config = self._config(options, response_mime_type="application/json")
        response = await self._generate(f"{prompt}\n\nJSON schema:\n{schema_hint}", config, "structured")
        return response.text or ""

    async def ground(
        self,
        prompt: str,
        references: Sequence[str],
        options: GenerationOptions,
        search: bool = False,
    ) -> GroundedText:
        tools: List[types.Tool] = []
        if references:
            tools.append(types.Tool(url_context=types.UrlContext()))
            prompt = prompt + "\n\nReference URLs:\n" + "\n".join(f"- {url}" for url in references)
        if search or not references:
            tools.append(types.Tool(google_search=types.GoogleSearch()))

        response = await self._generate(prompt, self._config(options, tools=tools), "grounding")
        text = response.text or ""
        citations = _extract_citations(response)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Grounded response: {len(text)} chars, {len(citations)} citation(s)")

        return GroundedText(text=text, citations=citations)


def build_gemini_client(api_key: str) -> Optional[genai.Client]:
    """Create the GenAI SDK client, or None when no key is configured."""
    if not api_key:
        return None
    return genai.Client(api_key=api_key)
