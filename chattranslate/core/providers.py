"""
Provider presets and settings normalization.

Stored settings may come from older releases (a single `provider`, a shared
`targetLanguage`) or use camelCase keys; everything is folded into a
validated TranslatorSettings here.
"""
import logging
from typing import Dict, List, Optional

from ..config import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL_ID,
    DEFAULT_DOUBLE_CLICK_TARGET_LANGUAGE,
    DEFAULT_INPUT_TARGET_LANGUAGE,
    DEFAULT_PROMPT_TEMPLATE,
    REQUEST_TIMEOUT_MS,
    CACHE_LIMIT_MB,
    clamp_cache_limit,
)
from .models import ProviderConfig, ProviderType, TerminologyLibrary, TranslatorSettings
from .terminology import normalize_libraries

logger = logging.getLogger(__name__)

PRESET_PROVIDERS = {
    "aihubmix": {
        "label": "AIHUBMIX",
        "base_url": "https://aihubmix.com/v1/chat/completions",
        "default_model": "LongCat-Flash-Chat",
    },
    "siliconflow": {
        "label": "SiliconFlow",
        "base_url": "https://api.siliconflow.cn/v1/chat/completions",
        "default_model": "deepseek-ai/DeepSeek-V3",
    },
    "deepseek": {
        "label": "DeepSeek",
        "base_url": "https://api.deepseek.com/v1/chat/completions",
        "default_model": "deepseek-chat",
    },
    "zhipu": {
        "label": "Zhipu",
        "base_url": "https://open.bigmodel.cn/api/paas/v4/chat/completions",
        "default_model": "glm-4.5-x",
    },
    "openrouter": {
        "label": "OpenRouter",
        "base_url": "https://openrouter.ai/api/v1/chat/completions",
        "default_model": "google/gemini-2.5-flash-lite",
    },
    "openai": {
        "label": "OpenAI Compatible",
        "base_url": DEFAULT_BASE_URL,
        "default_model": DEFAULT_MODEL_ID,
    },
}

# Presets offered by the "add provider" menu of a host UI
PRESET_MENU_KEYS = ["aihubmix", "siliconflow", "deepseek", "zhipu", "openrouter"]

DEFAULT_CUSTOM_LABEL = "Custom API"


def _pick(raw: dict, *names, default=None):
    """First non-None value among several spellings of the same field."""
    for name in names:
        value = raw.get(name)
        if value is not None:
            return value
    return default


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def create_preset_provider(preset_key: str, **overrides) -> ProviderConfig:
    spec = PRESET_PROVIDERS.get(preset_key)
    if not spec:
        raise ValueError(f"Unknown preset provider: {preset_key}")
    values = {
        "label": spec["label"],
        "type": ProviderType.PRESET,
        "preset_key": preset_key,
        "api_key": "",
        "base_url": spec["base_url"],
        "model_id": spec["default_model"],
    }
    values.update(overrides)
    return ProviderConfig(**values)


def find_preset_key_by_base(base_url: Optional[str]) -> Optional[str]:
    if not base_url:
        return None
    normalized = base_url.strip().lower()
    for key, spec in PRESET_PROVIDERS.items():
        if spec["base_url"].lower() == normalized:
            return key
    return None


def preset_menu() -> List[dict]:
    """Presets offered when adding a provider, in menu order."""
    return [{"key": key, **PRESET_PROVIDERS[key]} for key in PRESET_MENU_KEYS]


def normalize_provider(raw, fallback_id: str = "") -> ProviderConfig:
    """
    Validate one stored provider.

    Preset providers always use the preset endpoint; model and label fall
    back to the preset defaults. Custom providers default to the OpenAI
    endpoint. Legacy aliases (endpoint, model, name, variables.*) are honored.
    """
    if isinstance(raw, ProviderConfig):
        raw = raw.model_dump(mode="json")
    raw = dict(raw or {})
    variables = raw.get("variables") if isinstance(raw.get("variables"), dict) else {}

    base_url = _text(_pick(raw, "base_url", "baseUrl", "endpoint"))
    model_id = _text(_pick(raw, "model_id", "modelId", "model")) or _text(variables.get("model"))
    api_key = _text(_pick(raw, "api_key", "apiKey")) or _text(variables.get("apiKey"))
    label = _text(_pick(raw, "label", "name"))

    preset_key = _pick(raw, "preset_key", "presetKey")
    if not preset_key and raw.get("type") != ProviderType.CUSTOM:
        if fallback_id in PRESET_PROVIDERS:
            preset_key = fallback_id
        else:
            preset_key = find_preset_key_by_base(base_url)

    if preset_key and preset_key in PRESET_PROVIDERS:
        spec = PRESET_PROVIDERS[preset_key]
        return ProviderConfig(
            label=label or spec["label"],
            type=ProviderType.PRESET,
            preset_key=preset_key,
            api_key=api_key,
            base_url=spec["base_url"],
            model_id=model_id or spec["default_model"],
        )

    return ProviderConfig(
        label=label or fallback_id or DEFAULT_CUSTOM_LABEL,
        type=ProviderType.CUSTOM,
        api_key=api_key,
        base_url=base_url or DEFAULT_BASE_URL,
        model_id=model_id or DEFAULT_MODEL_ID,
    )


def next_provider_id(providers: Dict[str, ProviderConfig], base_id: str) -> str:
    """base_id if free, else base_id_2, base_id_3, ..."""
    if base_id not in providers:
        return base_id
    index = 2
    while f"{base_id}_{index}" in providers:
        index += 1
    return f"{base_id}_{index}"


def mask_api_key(api_key: str) -> str:
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


def normalize_settings(raw) -> TranslatorSettings:
    """Fold stored (possibly legacy) settings into a validated TranslatorSettings."""
    if isinstance(raw, TranslatorSettings):
        raw = raw.model_dump(mode="json")
    raw = dict(raw or {})

    preferred = _text(_pick(raw, "preferred_provider_id", "preferredProviderId"))
    providers_raw = raw.get("providers")
    providers: Dict[str, ProviderConfig] = {}

    if isinstance(providers_raw, dict):
        for provider_id, provider in providers_raw.items():
            if isinstance(provider, (dict, ProviderConfig)):
                providers[provider_id] = normalize_provider(provider, provider_id)
    elif isinstance(raw.get("provider"), dict):
        provider = normalize_provider(raw["provider"], "custom")
        provider_id = provider.preset_key if provider.type == ProviderType.PRESET else "custom"
        providers = {provider_id: provider}
        preferred = provider_id
        logger.info(f"[Settings] Migrated legacy single provider to '{provider_id}'")

    if not preferred or preferred not in providers:
        preferred = next(iter(providers), "")

    legacy_target = _text(_pick(raw, "target_language", "targetLanguage"))
    double_click = _text(_pick(raw, "double_click_target_language", "doubleClickTargetLanguage")) or legacy_target
    input_target = (
        _text(_pick(raw, "input_target_language", "inputTargetLanguage"))
        or double_click
        or DEFAULT_INPUT_TARGET_LANGUAGE
    )

    try:
        timeout_ms = int(_pick(raw, "request_timeout_ms", "requestTimeoutMs", default=REQUEST_TIMEOUT_MS))
    except (TypeError, ValueError):
        timeout_ms = REQUEST_TIMEOUT_MS
    if timeout_ms <= 0:
        timeout_ms = REQUEST_TIMEOUT_MS

    return TranslatorSettings(
        preferred_provider_id=preferred,
        double_click_target_language=double_click or DEFAULT_DOUBLE_CLICK_TARGET_LANGUAGE,
        input_target_language=input_target,
        request_timeout_ms=timeout_ms,
        cache_limit_mb=clamp_cache_limit(_pick(raw, "cache_limit_mb", "cacheLimitMb", "cacheLimitMB", default=CACHE_LIMIT_MB)),
        prompt_template=_text(_pick(raw, "prompt_template", "promptTemplate")) or DEFAULT_PROMPT_TEMPLATE,
        providers=providers,
        terminology_libraries=normalize_libraries(_pick(raw, "terminology_libraries", "terminologyLibraries", default=[])),
    )


# Current field name -> accepted spellings in an update body
SETTINGS_FIELD_ALIASES = {
    "preferred_provider_id": ("preferred_provider_id", "preferredProviderId"),
    "double_click_target_language": ("double_click_target_language", "doubleClickTargetLanguage"),
    "input_target_language": ("input_target_language", "inputTargetLanguage"),
    "request_timeout_ms": ("request_timeout_ms", "requestTimeoutMs"),
    "cache_limit_mb": ("cache_limit_mb", "cacheLimitMb", "cacheLimitMB"),
    "prompt_template": ("prompt_template", "promptTemplate"),
    "providers": ("providers",),
    "terminology_libraries": ("terminology_libraries", "terminologyLibraries"),
}


def _merge_providers(current: Dict[str, ProviderConfig], incoming) -> dict:
    """Keep stored API keys when the update sends them blank or masked."""
    if not isinstance(incoming, dict):
        return {provider_id: provider.model_dump(mode="json") for provider_id, provider in current.items()}
    merged = {}
    for provider_id, raw in incoming.items():
        if isinstance(raw, ProviderConfig):
            raw = raw.model_dump(mode="json")
        if not isinstance(raw, dict):
            continue
        raw = dict(raw)
        stored = current.get(provider_id)
        api_key = _text(_pick(raw, "api_key", "apiKey"))
        if stored is not None and (not api_key or api_key == mask_api_key(stored.api_key)):
            raw.pop("apiKey", None)
            raw["api_key"] = stored.api_key
        merged[provider_id] = raw
    return merged


def _merge_libraries(current: List[TerminologyLibrary], incoming) -> list:
    """
    Full libraries (with terms) replace the stored ones. Summaries without
    terms, as returned by the settings endpoint, only carry the enabled flag.
    """
    stored = [library.model_dump(mode="json") for library in current]
    if not isinstance(incoming, list):
        return stored
    if incoming and all(isinstance(item, dict) and "terms" in item for item in incoming):
        return incoming
    enabled = {
        item.get("id"): bool(item["enabled"])
        for item in incoming
        if isinstance(item, dict) and "enabled" in item
    }
    for library in stored:
        if library["id"] in enabled:
            library["enabled"] = enabled[library["id"]]
    return stored


def merge_settings(current: TranslatorSettings, raw) -> TranslatorSettings:
    """
    Apply an update body over the current settings.

    Fields the body leaves out keep their current value, so a settings object
    read from the API (masked keys, library summaries) can be sent back as is.
    """
    raw = dict(raw or {})
    merged = current.model_dump(mode="json")
    for field, names in SETTINGS_FIELD_ALIASES.items():
        name = next((name for name in names if name in raw), None)
        if name is None:
            continue
        if field == "providers":
            merged[field] = _merge_providers(current.providers, raw[name])
        elif field == "terminology_libraries":
            merged[field] = _merge_libraries(current.terminology_libraries, raw[name])
        else:
            merged[field] = raw[name]
    return normalize_settings(merged)
