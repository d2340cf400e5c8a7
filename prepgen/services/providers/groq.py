"""Groq backend (LangChain ChatGroq): fast text and JSON-mode structured output, no grounding."""
import logging
import time
from typing import List

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_groq import ChatGroq

from prepgen.services.providers.base import Capability, GenerationOptions, Provider

logger = logging.getLogger(__name__)


class GroqProvider(Provider):
    service = "groq"
    capabilities = frozenset({Capability.STRUCTURED, Capability.REASONING})

    def __init__(self, name: str, api_key: str, model: str, max_tokens: int = 4096):
        self.name = name
        self.model = model
        self._api_key = api_key
        self._max_tokens = max_tokens

    def _chat(self, options: GenerationOptions) -> ChatGroq:
        return ChatGroq(
            model=self.model,
            temperature=options.temperature,
            api_key=self._api_key,
            max_tokens=options.max_tokens or self._max_tokens,
            max_retries=0,  # retries are owned by the gateway
        )

    @staticmethod
    def _messages(prompt: str, options: GenerationOptions) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        if options.system_prompt:
            messages.append(SystemMessage(content=options.system_prompt))
        messages.append(HumanMessage(content=prompt))
        return messages

    async def _invoke(self, chat, prompt: str, options: GenerationOptions, context: str) -> str:
        logger.info(f"Groq ({self.model}) call started for {context}")
        start_time = time.perf_counter()
        response = await chat.ainvoke(self._messages(prompt, options))
        elapsed = time.perf_counter() - start_time
        logger.info(f"Groq ({self.model}) call completed in {elapsed:.2f}s for {context}")
        return response.content if hasattr(response, "content") else str(response)

    async def complete(self, prompt: str, options: GenerationOptions) -> str:
        return await self._invoke(self._chat(options), prompt, options, "text")

    async def complete_json(self, prompt: str, schema_hint: str, options: GenerationOptions) -> str:
        chat = self._chat(options).bind(response_format={"type": "json_object"})
        return await self._invoke(
            chat,
            f"{prompt}\n\nReturn ONLY a JSON object matching this schema:\n{schema_hint}",
            options,
            "structured",
        )
