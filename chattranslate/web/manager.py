import os
import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

from ..config import LANGUAGE_OPTIONS, SETTINGS_FILE
from ..core.adapter import PayloadMessageAdapter
from ..core.models import MessageState, ProviderConfig, ProviderType, TerminologyLibrary, TranslatorSettings
from ..core.orchestrator import MessageTranslator
from ..core.providers import (
    create_preset_provider,
    mask_api_key,
    merge_settings,
    next_provider_id,
    normalize_provider,
    normalize_settings,
    preset_menu,
)
from ..core.terminology import TerminologyResolver, parse_terminology_csv
from ..core.translate import Translator
from ..core.translation_cache import TranslationCache
from .models import LibrarySummary, MaskedProvider, PresetListResponse, ProviderCreateRequest, SettingsResponse

logger = logging.getLogger(__name__)


class UnknownProviderError(KeyError):
    pass


class TranslationManager:
    """Owns the settings file and the runtime engine built from it."""

    def __init__(self, settings_file: Path = SETTINGS_FILE):
        self._settings_file = Path(settings_file)
        self._lock = threading.RLock()  # Reentrant lock for thread safety
        self._settings = TranslatorSettings()
        self.cache = TranslationCache(self._settings.cache_limit_mb)
        self.terminology = TerminologyResolver()
        self.translator = Translator(self.cache, self.terminology)
        self.messages = MessageTranslator(self.translator, self.cache)
        self.adapter = PayloadMessageAdapter()
        self._load_settings()

    # --- persistence ---------------------------------------------------------

    def _apply(self, settings: TranslatorSettings) -> None:
        """Push settings into the runtime engine. Must be called with lock held."""
        self._settings = settings
        self.cache.set_limit(settings.cache_limit_mb)
        self.terminology.set_libraries(settings.terminology_libraries)
        self.translator.prompt_template = settings.prompt_template
        self.translator.timeout_ms = settings.request_timeout_ms

    def _save_settings(self) -> None:
        """Persist settings to disk. Must be called with lock held."""
        try:
            os.makedirs(self._settings_file.parent, exist_ok=True)
            tmp_path = str(self._settings_file) + ".tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._settings.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._settings_file)
        except OSError as e:
            logger.error(f"[Settings] Failed to persist settings: {e}")

    def _load_settings(self) -> None:
        """Load settings from disk on startup, migrating legacy layouts."""
        with self._lock:
            if not self._settings_file.is_file():
                self._apply(normalize_settings({}))
                return
            try:
                with open(self._settings_file, "r", encoding="utf-8") as f:
                    raw = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"[Settings] Failed to load {self._settings_file}: {e}")
                raw = {}
            self._apply(normalize_settings(raw))
            logger.info(
                f"[Settings] Loaded {len(self._settings.providers)} provider(s), "
                f"{len(self._settings.terminology_libraries)} glossary library(ies)"
            )

    @property
    def settings(self) -> TranslatorSettings:
        with self._lock:
            return self._settings.model_copy(deep=True)

    def update_settings(self, raw: dict, skip_runtime_reset: bool = False) -> TranslatorSettings:
        """
        Merge an update into the current settings and persist them.

        Fields missing from the body keep their value. Masked or blank API keys
        keep the stored key, and glossary summaries keep the stored terms.
        Unless skip_runtime_reset, pending translations are aborted, rendered
        results forgotten and the cache flushed, since provider or prompt
        changes invalidate them.
        """
        with self._lock:
            self._apply(merge_settings(self._settings, raw))
            self._save_settings()
        if not skip_runtime_reset:
            self.messages.reset()
        return self.settings

    @staticmethod
    def mask_provider(provider: ProviderConfig) -> MaskedProvider:
        return MaskedProvider(**{**provider.model_dump(), "api_key": mask_api_key(provider.api_key)})

    def masked_settings(self) -> SettingsResponse:
        settings = self.settings
        return SettingsResponse(
            preferred_provider_id=settings.preferred_provider_id,
            double_click_target_language=settings.double_click_target_language,
            input_target_language=settings.input_target_language,
            request_timeout_ms=settings.request_timeout_ms,
            cache_limit_mb=settings.cache_limit_mb,
            prompt_template=settings.prompt_template,
            providers={
                provider_id: self.mask_provider(provider)
                for provider_id, provider in settings.providers.items()
            },
            terminology_libraries=self.list_libraries(),
        )

    # --- providers -----------------------------------------------------------

    def list_presets(self) -> PresetListResponse:
        return PresetListResponse(presets=preset_menu(), languages=LANGUAGE_OPTIONS)

    def add_provider(self, request: ProviderCreateRequest) -> tuple:
        """
        Add a provider under a fresh id (the preset key, or `custom`, suffixed
        when taken). Raises ValueError for an unknown preset.
        """
        overrides = {
            field: value.strip()
            for field, value in (("label", request.label), ("model_id", request.model_id), ("api_key", request.api_key))
            if value.strip()
        }
        if request.preset_key:
            provider = create_preset_provider(request.preset_key, **overrides)
        else:
            provider = normalize_provider({**overrides, "type": ProviderType.CUSTOM, "base_url": request.base_url})

        with self._lock:
            provider_id = next_provider_id(self._settings.providers, request.preset_key or "custom")
            providers = {**self._settings.providers, provider_id: provider}
            changes_active = request.make_preferred or not self._settings.preferred_provider_id
            preferred = provider_id if changes_active else self._settings.preferred_provider_id
            self._settings = self._settings.model_copy(
                update={"providers": providers, "preferred_provider_id": preferred}
            )
            self._save_settings()
        if changes_active:
            self.messages.reset()
        logger.info(f"[Settings] Added provider '{provider_id}' ({provider.label})")
        return provider_id, provider

    # --- message translation -------------------------------------------------

    def toggle_message(self, message_key: str, main_text: str, quoted_texts: List[str],
                       target_language: str = None) -> Optional[MessageState]:
        settings = self.settings
        node = {"message_key": message_key, "main_text": main_text, "quoted_texts": quoted_texts}
        return self.messages.toggle(
            node,
            self.adapter,
            settings.active_provider(),
            target_language or settings.double_click_target_language,
            prompt_template=settings.prompt_template,
            timeout_ms=settings.request_timeout_ms,
        )

    def get_message(self, message_key: str) -> Optional[MessageState]:
        return self.messages.get_state(message_key)

    def cancel_message(self, message_key: str) -> bool:
        return self.messages.cancel(message_key)

    def quick_translate(self, text: str, target_language: str = None) -> Optional[str]:
        settings = self.settings
        return self.messages.quick_translate(
            text,
            settings.active_provider(),
            target_language or settings.input_target_language,
            prompt_template=settings.prompt_template,
            timeout_ms=settings.request_timeout_ms,
        )

    def test_provider(self, provider_id: str) -> str:
        settings = self.settings
        provider = settings.providers.get(provider_id)
        if provider is None:
            raise UnknownProviderError(provider_id)
        return self.translator.test_provider(
            provider,
            settings.double_click_target_language,
            timeout_ms=settings.request_timeout_ms,
        )

    # --- cache ---------------------------------------------------------------

    def cache_stats(self) -> dict:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("[Cache] Cleared on request")

    # --- terminology ---------------------------------------------------------

    def list_libraries(self) -> List[LibrarySummary]:
        return [
            LibrarySummary(id=lib.id, name=lib.name, enabled=lib.enabled, term_count=len(lib.terms))
            for lib in self.terminology.libraries
        ]

    def _store_libraries(self) -> None:
        """Persist the resolver's libraries. Glossary edits change translations, so the cache is flushed."""
        with self._lock:
            self._settings = self._settings.model_copy(update={"terminology_libraries": self.terminology.libraries})
            self._save_settings()
        self.cache.clear()

    def import_library(self, content, name: str) -> TerminologyLibrary:
        library = self.terminology.add_library(parse_terminology_csv(content, name))
        self._store_libraries()
        return library

    def set_library_enabled(self, library_id: str, enabled: bool) -> bool:
        if not self.terminology.set_enabled(library_id, enabled):
            return False
        self._store_libraries()
        return True

    def remove_library(self, library_id: str) -> bool:
        if not self.terminology.remove_library(library_id):
            return False
        self._store_libraries()
        return True

    def get_status(self) -> dict:
        settings = self.settings
        provider = settings.active_provider()
        return {
            "status": "online",
            "active_provider": provider.label if provider else None,
            "providers": len(settings.providers),
            "active_translations": len(self.messages.registry),
            "cache": self.cache.stats(),
        }


# Global instance
translation_manager = TranslationManager()
