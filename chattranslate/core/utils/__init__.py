"""
ChatTranslate Core Utilities
"""
from .cancel import CancellationToken, TokenRegistry
from .llm import (
    TranslationError,
    NoProviderError,
    NoEndpointError,
    HttpStatusError,
    EmptyResponseError,
    UnrecognizedFormatError,
    EmptyInputError,
    TranslationCancelled,
    extract_translation,
    post_chat_completion,
)

__all__ = [
    # Cancellation
    'CancellationToken',
    'TokenRegistry',
    # LLM utilities
    'TranslationError',
    'NoProviderError',
    'NoEndpointError',
    'HttpStatusError',
    'EmptyResponseError',
    'UnrecognizedFormatError',
    'EmptyInputError',
    'TranslationCancelled',
    'extract_translation',
    'post_chat_completion',
]
