"""Shared fixtures: scripted providers that never touch the network."""

import asyncio

import pytest

from pte_scoring.providers.base import ScoringProvider
from pte_scoring.providers.registry import ProviderUnavailable


class StubProvider(ScoringProvider):
    """Provider returning a canned RawProviderScore, raising, or stalling."""

    def __init__(self, name, result=None, error=None, delay=0.0):
        super().__init__(model=f"{name}-stub")
        self.name = name
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def _complete(self, prompt, max_tokens, json_mode=True):
        raise AssertionError("stub providers do not complete prompts")

    async def score(self, request):
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def stub_provider():
    return StubProvider


@pytest.fixture
def factory_for():
    """Build a provider factory from a name -> provider mapping."""

    def build(providers):
        def factory(name):
            if name in providers:
                return providers[name]
            return ProviderUnavailable(name=name, reason=f"{name}_api_key_missing")

        return factory

    return build
