"""
Provider interface shared by every language-model backend.

A backend advertises the capabilities it supports; the gateway only routes a
call to providers that advertise the matching capability.
"""
from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence


class Capability(str, Enum):
    GROUNDING = "grounding"
    STRUCTURED = "structured"
    REASONING = "reasoning"


@dataclass
class GenerationOptions:
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    system_prompt: Optional[str] = None


@dataclass
class GroundedText:
    """Citation-backed prose returned by a grounding call."""
    text: str
    citations: List[str] = field(default_factory=list)


class Provider(ABC):
    """
    Base class for a language-model backend.

    Subclasses override the coroutines that match their ``capabilities``.
    ``complete_json`` returns raw text: schema validation happens in the
    gateway so every backend is held to the same parser.
    """

    name: str = "provider"
    service: str = "default"
    capabilities: FrozenSet[Capability] = frozenset()

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    async def complete(self, prompt: str, options: GenerationOptions) -> str:
        raise NotImplementedError(f"{self.name} does not support text generation")

    async def complete_json(self, prompt: str, schema_hint: str, options: GenerationOptions) -> str:
        raise NotImplementedError(f"{self.name} does not support structured output")

    async def ground(
        self,
        prompt: str,
        references: Sequence[str],
        options: GenerationOptions,
        search: bool = False,
    ) -> GroundedText:
        raise NotImplementedError(f"{self.name} does not support grounding")
