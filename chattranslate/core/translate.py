import logging
import threading
import time

import requests

from ..config import (
    DEFAULT_MODEL_ID,
    DEFAULT_PROMPT_TEMPLATE,
    REQUEST_TEMPERATURE,
    REQUEST_TIMEOUT_MS,
)
from .models import CacheEntry, PreparedText, ProviderConfig, Segment, SegmentType
from .terminology import TerminologyResolver, is_terminology_only, restore
from .translation_cache import (
    TranslationCache,
    direct_cache_key,
    normalize_text,
    provider_signature,
    text_fingerprint,
)
from .utils.cancel import CancellationToken
from .utils.llm import (
    NoEndpointError,
    NoProviderError,
    TranslationCancelled,
    TranslationError,
    extract_translation,
    post_chat_completion,
)

logger = logging.getLogger(__name__)

TARGET_LANGUAGE_PLACEHOLDER = "{{targetLanguage}}"


class Translator:
    """Request pipeline: direct cache -> terminology -> provider call -> restore -> cache."""

    CONNECTIVITY_TEXT = "Hello, this is a connectivity test."
    PREVIEW_LENGTH = 48

    def __init__(
        self,
        cache: TranslationCache,
        terminology: TerminologyResolver = None,
        prompt_template: str = None,
        timeout_ms: int = None,
    ):
        self.cache = cache
        self.terminology = terminology or TerminologyResolver()
        self.prompt_template = prompt_template or DEFAULT_PROMPT_TEMPLATE
        self.timeout_ms = timeout_ms or REQUEST_TIMEOUT_MS

    def build_system_prompt(self, target_language: str, prompt_template: str = None) -> str:
        template = prompt_template or self.prompt_template
        return template.replace(TARGET_LANGUAGE_PLACEHOLDER, target_language)

    def build_payload(self, provider: ProviderConfig, prepared: PreparedText,
                      target_language: str, prompt_template: str = None) -> dict:
        user_prompt = (
            f"Please translate the following message into {target_language} "
            f"and reply with translation only: {prepared.text}"
        )
        if prepared.replacements:
            user_prompt = f"{user_prompt}\n\n{prepared.instructions}"

        return {
            "model": provider.model_id or DEFAULT_MODEL_ID,
            "messages": [
                {"role": "system", "content": self.build_system_prompt(target_language, prompt_template)},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": REQUEST_TEMPERATURE,
        }

    def _store_direct(self, key: str, text: str, translation: str,
                      fingerprint: str, provider_sig: str, target_language: str) -> None:
        self.cache.put(key, CacheEntry(
            segments=[Segment(type=SegmentType.DIRECT, text=text, translation=translation)],
            text_signature=fingerprint,
            provider_signature=provider_sig,
            target_language=target_language,
            timestamp=time.time(),
            direct=True,
        ))

    def _call_provider(self, provider: ProviderConfig, endpoint: str, payload: dict,
                       token: CancellationToken, timeout_ms: int):
        """POST with a timer that cancels the token when the call overruns."""
        timeout_s = timeout_ms / 1000
        timer = threading.Timer(timeout_s, token.cancel, kwargs={"reason": "timeout"})
        timer.daemon = True
        timer.start()
        try:
            return post_chat_completion(endpoint, payload, provider.api_key, timeout=timeout_s)
        except TranslationCancelled:
            raise
        except requests.Timeout as e:
            token.cancel("timeout")
            raise TranslationCancelled(token.reason) from e
        except (TranslationError, requests.RequestException) as e:
            if token.cancelled:
                raise TranslationCancelled(token.reason) from e
            if isinstance(e, TranslationError):
                raise
            raise TranslationError(f"Request failed: {e}") from e
        finally:
            # A timer left running would cancel the next call sharing this token
            timer.cancel()

    def translate(self, provider: ProviderConfig, text: str, token: CancellationToken = None,
                  target_language: str = "English", *, prompt_template: str = None,
                  timeout_ms: int = None, use_cache: bool = True) -> str:
        """
        Translate one piece of text.

        Raises:
            NoProviderError: provider missing
            NoEndpointError: blank base URL
            HttpStatusError / EmptyResponseError / UnrecognizedFormatError
            TranslationCancelled: token fired (user cancel, supersede, or timeout)
        """
        if provider is None:
            raise NoProviderError()
        endpoint = (provider.base_url or "").strip()
        if not endpoint:
            raise NoEndpointError()

        token = token or CancellationToken()
        if token.cancelled:
            raise TranslationCancelled(token.reason)

        normalized = normalize_text(text)
        provider_sig = provider_signature(provider)
        fingerprint = text_fingerprint(normalized)
        key = direct_cache_key(normalized, provider_sig, target_language)

        if use_cache:
            cached = self.cache.lookup(key, fingerprint, provider_sig, target_language)
            if cached is not None and cached.segments:
                logger.debug(f"[Translator] Direct cache hit ({len(normalized)} chars)")
                return cached.segments[0].translation or ""

        prepared = self.terminology.prepare(normalized, target_language)
        if is_terminology_only(prepared.text, prepared.replacements):
            translation = restore(prepared.text, prepared.replacements)
            logger.info("[Translator] Text is glossary terms only, skipping provider call")
            if use_cache:
                self._store_direct(key, normalized, translation, fingerprint, provider_sig, target_language)
            return translation

        payload = self.build_payload(provider, prepared, target_language, prompt_template)
        logger.info(
            f"[Translator] {provider.label or endpoint} ({provider.model_id}): "
            f"{len(normalized)} chars -> {target_language}"
        )

        body = self._call_provider(provider, endpoint, payload, token, timeout_ms or self.timeout_ms)
        if token.cancelled:
            raise TranslationCancelled(token.reason)

        translation = restore(extract_translation(body), prepared.replacements)
        if use_cache:
            self._store_direct(key, normalized, translation, fingerprint, provider_sig, target_language)
        return translation

    def test_provider(self, provider: ProviderConfig, target_language: str, timeout_ms: int = None) -> str:
        """Send a fixed test sentence past the cache and return a short preview of the answer."""
        translation = self.translate(
            provider,
            self.CONNECTIVITY_TEXT,
            CancellationToken(),
            target_language,
            timeout_ms=timeout_ms,
            use_cache=False,
        )
        if len(translation) > self.PREVIEW_LENGTH:
            return translation[:self.PREVIEW_LENGTH] + "…"
        return translation
