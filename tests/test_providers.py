"""Tests for provider presets and stored-settings normalization."""

from __future__ import annotations

import pytest

from chattranslate.config import DEFAULT_BASE_URL, DEFAULT_MODEL_ID, DEFAULT_PROMPT_TEMPLATE, REQUEST_TIMEOUT_MS
from chattranslate.core.models import ProviderConfig, ProviderType
from chattranslate.core.providers import (
    PRESET_PROVIDERS,
    create_preset_provider,
    find_preset_key_by_base,
    mask_api_key,
    merge_settings,
    next_provider_id,
    normalize_provider,
    normalize_settings,
    preset_menu,
)


class TestPresets:
    def test_create_preset(self):
        provider = create_preset_provider("deepseek", api_key="sk-1")

        assert provider.type == ProviderType.PRESET
        assert provider.base_url == PRESET_PROVIDERS["deepseek"]["base_url"]
        assert provider.model_id == "deepseek-chat"
        assert provider.api_key == "sk-1"

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            create_preset_provider("nope")

    def test_find_by_base_ignores_case(self):
        assert find_preset_key_by_base("HTTPS://API.DEEPSEEK.COM/v1/chat/completions") == "deepseek"
        assert find_preset_key_by_base("https://example.com") is None
        assert find_preset_key_by_base(None) is None

    def test_preset_menu_order(self):
        menu = preset_menu()

        assert [item["key"] for item in menu] == ["aihubmix", "siliconflow", "deepseek", "zhipu", "openrouter"]
        assert menu[2]["base_url"] == PRESET_PROVIDERS["deepseek"]["base_url"]
        assert menu[2]["default_model"] == "deepseek-chat"


class TestNormalizeProvider:
    def test_preset_endpoint_is_forced(self):
        provider = normalize_provider(
            {"presetKey": "siliconflow", "baseUrl": "https://evil.example", "apiKey": " key "},
        )

        assert provider.base_url == PRESET_PROVIDERS["siliconflow"]["base_url"]
        assert provider.model_id == PRESET_PROVIDERS["siliconflow"]["default_model"]
        assert provider.api_key == "key"
        assert provider.label == "SiliconFlow"

    def test_preset_inferred_from_id(self):
        provider = normalize_provider({"apiKey": "k"}, "openrouter")

        assert provider.type == ProviderType.PRESET
        assert provider.preset_key == "openrouter"

    def test_custom_defaults(self):
        provider = normalize_provider({"label": "Mine"}, "my-api")

        assert provider.type == ProviderType.CUSTOM
        assert provider.base_url == DEFAULT_BASE_URL
        assert provider.model_id == DEFAULT_MODEL_ID
        assert provider.label == "Mine"

    def test_custom_stays_custom_after_round_trip(self):
        first = normalize_provider({}, "my-api")

        again = normalize_provider(first.model_dump(mode="json"), "my-api")

        assert again == first

    def test_legacy_aliases(self):
        provider = normalize_provider(
            {"endpoint": "https://api.example/v1", "name": "Old", "variables": {"model": "m9", "apiKey": "sk-old"}},
            "custom",
        )

        assert provider.base_url == "https://api.example/v1"
        assert provider.model_id == "m9"
        assert provider.api_key == "sk-old"
        assert provider.label == "Old"


class TestSettings:
    def test_legacy_single_provider_is_migrated(self):
        settings = normalize_settings({
            "provider": {"endpoint": PRESET_PROVIDERS["deepseek"]["base_url"], "apiKey": "sk-1"},
            "targetLanguage": "日本語",
        })

        assert list(settings.providers) == ["deepseek"]
        assert settings.preferred_provider_id == "deepseek"
        assert settings.double_click_target_language == "日本語"
        assert settings.input_target_language == "日本語"

    def test_legacy_custom_provider_id(self):
        settings = normalize_settings({"provider": {"endpoint": "https://api.example/v1"}})

        assert list(settings.providers) == ["custom"]

    def test_preferred_falls_back_to_first_provider(self):
        settings = normalize_settings({
            "preferredProviderId": "gone",
            "providers": {"a": {"baseUrl": "https://a.example"}, "b": {"baseUrl": "https://b.example"}},
        })

        assert settings.preferred_provider_id == "a"
        assert settings.active_provider().base_url == "https://a.example"

    def test_empty_settings_use_defaults(self):
        settings = normalize_settings(None)

        assert settings.providers == {}
        assert settings.preferred_provider_id == ""
        assert settings.active_provider() is None
        assert settings.request_timeout_ms == REQUEST_TIMEOUT_MS
        assert settings.prompt_template == DEFAULT_PROMPT_TEMPLATE

    def test_bad_numbers_are_repaired(self):
        settings = normalize_settings({"requestTimeoutMs": "soon", "cacheLimitMb": 999})

        assert settings.request_timeout_ms == REQUEST_TIMEOUT_MS
        assert settings.cache_limit_mb == 50

    def test_snake_case_round_trip(self):
        settings = normalize_settings({
            "providers": {"deepseek": {"api_key": "sk-1"}},
            "terminology_libraries": [{"id": "l", "name": "L", "terms": [{"source": "Acme", "target": "艾克姆"}]}],
        })

        again = normalize_settings(settings)

        assert again == settings
        assert again.terminology_libraries[0].terms[0].source == "Acme"


class TestHelpers:
    def test_next_provider_id(self):
        providers = {"deepseek": ProviderConfig(), "deepseek_2": ProviderConfig()}

        assert next_provider_id(providers, "zhipu") == "zhipu"
        assert next_provider_id(providers, "deepseek") == "deepseek_3"

    def test_mask_api_key(self):
        assert mask_api_key("sk-aaaa1111bbbb") == "sk-a...bbbb"
        assert mask_api_key("short") == "*****"
        assert mask_api_key("") == ""


class TestMergeSettings:
    @pytest.fixture
    def current(self):
        return normalize_settings({
            "preferredProviderId": "mine",
            "doubleClickTargetLanguage": "简体中文",
            "providers": {"mine": {"label": "Mine", "baseUrl": "https://api.x/v1", "apiKey": "sk-aaaa1111bbbb"}},
            "terminologyLibraries": [{"id": "lib-acme", "name": "Acme", "terms": [{"source": "Acme", "target": "艾克姆"}]}],
        })

    def test_missing_fields_keep_current_values(self, current):
        merged = merge_settings(current, {"inputTargetLanguage": "日本語"})

        assert merged.input_target_language == "日本語"
        assert merged.double_click_target_language == "简体中文"
        assert merged.providers == current.providers
        assert merged.terminology_libraries == current.terminology_libraries

    def test_masked_or_blank_key_keeps_stored_key(self, current):
        for sent in ("sk-a...bbbb", "", None):
            merged = merge_settings(current, {"providers": {"mine": {"label": "Mine", "base_url": "https://api.x/v1", "api_key": sent}}})

            assert merged.providers["mine"].api_key == "sk-aaaa1111bbbb"

    def test_new_key_replaces_stored_key(self, current):
        merged = merge_settings(current, {"providers": {"mine": {"apiKey": "sk-new-key-0001"}}})

        assert merged.providers["mine"].api_key == "sk-new-key-0001"

    def test_provider_missing_from_body_is_removed(self, current):
        merged = merge_settings(current, {"providers": {"deepseek": {"apiKey": "sk-1"}}})

        assert list(merged.providers) == ["deepseek"]
        assert merged.preferred_provider_id == "deepseek"

    def test_library_summaries_only_toggle_enabled(self, current):
        merged = merge_settings(current, {
            "terminology_libraries": [{"id": "lib-acme", "name": "Acme", "enabled": False, "term_count": 1}],
        })

        assert merged.terminology_libraries[0].enabled is False
        assert merged.terminology_libraries[0].terms[0].target == "艾克姆"

    def test_full_libraries_replace_stored(self, current):
        merged = merge_settings(current, {
            "terminologyLibraries": [{"id": "lib-new", "name": "New", "terms": [{"source": "Foo", "target": "Bar"}]}],
        })

        assert [lib.id for lib in merged.terminology_libraries] == ["lib-new"]
