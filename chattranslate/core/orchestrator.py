"""
Message Translation Orchestrator

Drives the request pipeline over a message's segments, one segment after the
other, with at most one live translation per message key. Also owns the
standalone quick-translate slot used for composer input.
"""
import logging
import threading
import time
from typing import Any, Dict, List, Optional

from .adapter import MessageAdapter, SegmentRenderer
from .models import (
    CacheEntry,
    ExtractedMessage,
    MessageState,
    ProviderConfig,
    Segment,
    TranslationStatus,
)
from .translate import Translator
from .translation_cache import TranslationCache, build_text_signature, normalize_text, provider_signature
from .utils.cancel import CancellationToken, TokenRegistry
from .utils.llm import (
    EmptyInputError,
    EmptyResponseError,
    NoProviderError,
    TranslationCancelled,
    TranslationError,
)

logger = logging.getLogger(__name__)

QUICK_TRANSLATE_KEY = "__quick_translate__"


class MessageTranslator:
    def __init__(self, translator: Translator, cache: TranslationCache = None,
                 registry: TokenRegistry = None, renderer: SegmentRenderer = None):
        self.translator = translator
        self.cache = cache or translator.cache
        self.registry = registry or TokenRegistry()
        self.renderer = renderer
        self._states: Dict[str, MessageState] = {}
        self._containers: Dict[str, Any] = {}
        self._lock = threading.RLock()

    # --- state -------------------------------------------------------------

    def get_state(self, message_key: str) -> Optional[MessageState]:
        with self._lock:
            state = self._states.get(message_key)
            return state.model_copy(deep=True) if state else None

    def states(self) -> List[MessageState]:
        with self._lock:
            return [state.model_copy(deep=True) for state in self._states.values()]

    def is_active(self, message_key: str) -> bool:
        with self._lock:
            return message_key in self._states

    def _is_live(self, message_key: str, state: MessageState, token: CancellationToken) -> bool:
        with self._lock:
            owned = self._states.get(message_key) is state
            loading = state.status == TranslationStatus.LOADING
        return owned and loading and not token.cancelled and self.registry.is_current(message_key, token)

    def _snapshot(self, state: MessageState) -> MessageState:
        with self._lock:
            return state.model_copy(deep=True)

    # --- renderer ----------------------------------------------------------

    def _render(self, message_key: str, segments: List[Segment]) -> None:
        if self.renderer is not None:
            self.renderer.render_segments(self._containers.get(message_key), segments)

    def _render_error(self, message_key: str, message: str) -> None:
        show_error = getattr(self.renderer, "show_error", None)
        if show_error is not None:
            show_error(self._containers.get(message_key), message)

    # --- message translation -------------------------------------------------

    def translate_message(self, message_key: str, extracted: ExtractedMessage,
                          provider: Optional[ProviderConfig], target_language: str, *,
                          container: Any = None, prompt_template: str = None,
                          timeout_ms: int = None) -> MessageState:
        """
        Translate every segment of a message and cache the composite result.

        A cache entry is reused only when text signature, provider signature and
        target language all match. Otherwise segments are translated in order;
        if the request is cancelled or superseded between segments, nothing is
        written to the cache or rendered.
        """
        text_signature = build_text_signature(extracted.main_text, extracted.quoted_texts)
        provider_sig = provider_signature(provider)
        state = MessageState(
            message_key=message_key,
            status=TranslationStatus.LOADING,
            segments=[segment.model_copy(update={"translation": None}) for segment in extracted.segments],
            target_language=target_language,
        )
        with self._lock:
            # Token and state are published together; a cancel always sees both
            token = self.registry.replace(message_key)
            self._states[message_key] = state
            self._containers[message_key] = container

        try:
            cached = self.cache.lookup(message_key, text_signature, provider_sig, target_language)
            if cached is not None:
                with self._lock:
                    if token.cancelled or state.status != TranslationStatus.LOADING:
                        return self._mark_cancelled(message_key, state, token)
                    state.segments = [segment.model_copy() for segment in cached.segments]
                    state.status = TranslationStatus.DONE
                    state.from_cache = True
                self._render(message_key, state.segments)
                logger.debug(f"[Orchestrator] Cache hit for message {message_key}")
                return self._snapshot(state)

            if provider is None:
                return self._fail(message_key, state, NoProviderError())

            self._render(message_key, state.segments)
            results = self._translate_segments(
                message_key, state, token, extracted, provider, target_language,
                prompt_template=prompt_template, timeout_ms=timeout_ms,
            )
        finally:
            self.registry.release(message_key, token)

        if results is None:
            return self._snapshot(state)
        if not self._is_live_after_release(message_key, state, token):
            return self._mark_cancelled(message_key, state, token)

        with self._lock:
            state.segments = results
            state.status = TranslationStatus.DONE
        self._render(message_key, results)
        self.cache.put(message_key, CacheEntry(
            segments=results,
            text_signature=text_signature,
            provider_signature=provider_sig,
            target_language=target_language,
            timestamp=time.time(),
        ))
        logger.info(f"[Orchestrator] Message {message_key} translated ({len(results)} segment(s))")
        return self._snapshot(state)

    def _translate_segments(self, message_key: str, state: MessageState, token: CancellationToken,
                            extracted: ExtractedMessage, provider: ProviderConfig, target_language: str, *,
                            prompt_template: str = None, timeout_ms: int = None) -> Optional[List[Segment]]:
        """Translate segments in order. None means the run ended cancelled or failed."""
        results = []
        try:
            for segment in extracted.segments:
                if not normalize_text(segment.text):
                    results.append(segment.resolved(""))
                    continue
                translation = self.translator.translate(
                    provider,
                    segment.text,
                    token,
                    target_language,
                    prompt_template=prompt_template,
                    timeout_ms=timeout_ms,
                )
                if not self._is_live(message_key, state, token):
                    self._mark_cancelled(message_key, state, token)
                    return None
                results.append(segment.resolved(translation.strip()))
        except TranslationCancelled:
            self._mark_cancelled(message_key, state, token)
            return None
        except TranslationError as e:
            if token.cancelled:
                self._mark_cancelled(message_key, state, token)
            else:
                self._fail(message_key, state, e)
            return None
        except Exception as e:
            self._fail(message_key, state, e)
            raise
        return results

    def _is_live_after_release(self, message_key: str, state: MessageState, token: CancellationToken) -> bool:
        # Our token was just released, so registry currency can no longer be checked
        with self._lock:
            owned = self._states.get(message_key) is state
            loading = state.status == TranslationStatus.LOADING
        return owned and loading and not token.cancelled

    def _mark_cancelled(self, message_key: str, state: MessageState, token: CancellationToken) -> MessageState:
        with self._lock:
            if state.status == TranslationStatus.LOADING:
                state.status = TranslationStatus.CANCELLED
        logger.info(f"[Orchestrator] Message {message_key} cancelled ({token.reason or 'superseded'})")
        return self._snapshot(state)

    def _fail(self, message_key: str, state: MessageState, error: Exception) -> MessageState:
        message = str(error) or error.__class__.__name__
        with self._lock:
            state.status = TranslationStatus.ERROR
            state.error = message
            owned = self._states.get(message_key) is state
        logger.warning(f"[Orchestrator] Message {message_key} failed: {message}")
        if owned:
            self._render_error(message_key, message)
        return self._snapshot(state)

    def toggle(self, node: Any, adapter: MessageAdapter, provider: Optional[ProviderConfig],
               target_language: str, *, container: Any = None, prompt_template: str = None,
               timeout_ms: int = None) -> Optional[MessageState]:
        """
        Show or hide the translation of a host message.

        A second toggle on the same message removes the rendered result and,
        if it is still loading, cancels it. Returns None when the message has
        nothing to translate.
        """
        message_key = adapter.message_key(node)
        if self.is_active(message_key):
            return self.dismiss(message_key)

        extracted = adapter.extract_segments(node)
        if not extracted.segments:
            logger.info(f"[Orchestrator] Message {message_key} has no text to translate")
            return None

        return self.translate_message(
            message_key,
            extracted,
            provider,
            target_language,
            container=container,
            prompt_template=prompt_template,
            timeout_ms=timeout_ms,
        )

    def dismiss(self, message_key: str) -> Optional[MessageState]:
        """Remove a rendered translation, cancelling it in place if still loading."""
        with self._lock:
            state = self._states.pop(message_key, None)
            container = self._containers.pop(message_key, None)
            if state is None:
                return None
            if state.status == TranslationStatus.LOADING:
                state.status = TranslationStatus.CANCELLED
            snapshot = state.model_copy(deep=True)
        self.registry.cancel(message_key, "dismissed")
        remove = getattr(self.renderer, "remove", None)
        if remove is not None:
            remove(container)
        return snapshot

    def cancel(self, message_key: str) -> bool:
        """Cancel an in-flight translation but keep its state for inspection."""
        cancelled = self.registry.cancel(message_key, "cancelled")
        with self._lock:
            state = self._states.get(message_key)
            if state is not None and state.status == TranslationStatus.LOADING:
                state.status = TranslationStatus.CANCELLED
                cancelled = True
        return cancelled

    def cancel_all(self) -> int:
        count = self.registry.cancel_all("cancelled")
        with self._lock:
            for state in self._states.values():
                if state.status == TranslationStatus.LOADING:
                    state.status = TranslationStatus.CANCELLED
        return count

    def reset(self) -> None:
        """Abort everything, forget rendered results and flush the cache."""
        self.cancel_all()
        with self._lock:
            keys = list(self._states)
        for message_key in keys:
            self.dismiss(message_key)
        self.cache.clear()
        logger.info("[Orchestrator] Runtime state reset")

    # --- quick translate -----------------------------------------------------

    def quick_translate(self, text: str, provider: Optional[ProviderConfig], target_language: str, *,
                        prompt_template: str = None, timeout_ms: int = None) -> Optional[str]:
        """
        Translate standalone text (composer input).

        Re-triggering cancels the previous run. Returns None when cancelled.
        """
        source = normalize_text(text)
        if not source:
            raise EmptyInputError("Input is empty")
        if provider is None:
            raise NoProviderError()

        token = self.registry.replace(QUICK_TRANSLATE_KEY)
        try:
            raw = self.translator.translate(
                provider,
                source,
                token,
                target_language,
                prompt_template=prompt_template,
                timeout_ms=timeout_ms,
            )
        except TranslationCancelled:
            logger.info(f"[Orchestrator] Quick translate cancelled ({token.reason})")
            return None
        except TranslationError:
            if token.cancelled:
                return None
            raise
        finally:
            self.registry.release(QUICK_TRANSLATE_KEY, token)

        if token.cancelled:
            return None
        translation = raw.strip()
        if not translation:
            raise EmptyResponseError("Translation result is empty")
        return translation

    def cancel_quick_translate(self) -> bool:
        return self.registry.cancel(QUICK_TRANSLATE_KEY, "cancelled")
