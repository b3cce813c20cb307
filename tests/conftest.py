"""Shared pytest fixtures for chattranslate tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from chattranslate.core.models import ProviderConfig, ProviderType, TerminologyLibrary, Term
from chattranslate.core.orchestrator import MessageTranslator
from chattranslate.core.terminology import TerminologyResolver
from chattranslate.core.translate import Translator
from chattranslate.core.translation_cache import TranslationCache

POST_TARGET = "chattranslate.core.utils.llm.requests.post"


def make_response(body=None, status_code: int = 200, content_type: str = "application/json", text: str = None):
    """Build a fake requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = {"content-type": content_type} if content_type else {}
    response.json.return_value = body
    if text is None:
        text = body if isinstance(body, str) else ""
    response.text = text
    return response


def chat_response(content: str):
    return make_response({"choices": [{"message": {"content": content}}]})


@pytest.fixture
def provider() -> ProviderConfig:
    return ProviderConfig(
        label="Test API",
        type=ProviderType.CUSTOM,
        api_key="sk-aaaa1111bbbb",
        base_url="https://api.x/v1/chat/completions",
        model_id="m1",
    )


@pytest.fixture
def cache() -> TranslationCache:
    return TranslationCache(limit_mb=1)


@pytest.fixture
def terminology() -> TerminologyResolver:
    return TerminologyResolver()


@pytest.fixture
def acme_library() -> TerminologyLibrary:
    return TerminologyLibrary(
        id="lib-acme",
        name="Acme",
        enabled=True,
        terms=[Term(source="Acme", target="艾克姆")],
    )


@pytest.fixture
def translator(cache: TranslationCache, terminology: TerminologyResolver) -> Translator:
    return Translator(cache, terminology)


@pytest.fixture
def renderer() -> MagicMock:
    return MagicMock()


@pytest.fixture
def orchestrator(translator: Translator, cache: TranslationCache, renderer: MagicMock) -> MessageTranslator:
    return MessageTranslator(translator, cache, renderer=renderer)
