"""Shared fixtures and fake generation providers."""

import asyncio
from typing import List, Optional, Sequence, Tuple

import pytest

from career_chat.domain.errors import GenerationError
from career_chat.domain.models import Turn
from career_chat.repositories.memory import InMemoryRepository
from career_chat.services.assembler import ConversationAssembler
from career_chat.services.llm import GenerationProvider
from career_chat.services.orchestrator import SessionOrchestrator


class FakeProvider(GenerationProvider):
    """Replies with a counter and records every request."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls: List[Tuple[str, List[Turn], float]] = []

    async def generate(
        self, system_instruction: str, turns: Sequence[Turn], temperature: float = 0.7
    ) -> str:
        self.calls.append((system_instruction, list(turns), temperature))
        if self.delay:
            await asyncio.sleep(self.delay)
        return f"## Advice {len(self.calls)}\n- reply to: {turns[-1].content}"


class FailingProvider(GenerationProvider):
    """Fails the first ``failures`` calls, then behaves like FakeProvider."""

    def __init__(self, failures: int = 1, error: Optional[Exception] = None) -> None:
        self.failures = failures
        self.error = error or GenerationError("quota exhausted")
        self.calls = 0

    async def generate(
        self, system_instruction: str, turns: Sequence[Turn], temperature: float = 0.7
    ) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return f"Recovered reply to: {turns[-1].content}"


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def orchestrator(repository, provider):
    return SessionOrchestrator(
        repository=repository,
        provider=provider,
        assembler=ConversationAssembler(),
    )
