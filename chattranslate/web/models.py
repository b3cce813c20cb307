from pydantic import BaseModel
from typing import Optional, Dict, List

from ..core.models import ProviderConfig


class MessageToggleRequest(BaseModel):
    main_text: str = ""
    quoted_texts: List[str] = []
    target_language: Optional[str] = None  # Defaults to the message target language


class QuickTranslateRequest(BaseModel):
    text: str
    target_language: Optional[str] = None  # Defaults to the input target language


class QuickTranslateResponse(BaseModel):
    translation: Optional[str] = None
    cancelled: bool = False


class CacheStatsResponse(BaseModel):
    entries: int
    message_entries: int
    direct_entries: int
    size_bytes: int
    limit_bytes: int


class ProviderTestResponse(BaseModel):
    provider_id: str
    preview: str


class LibrarySummary(BaseModel):
    id: str
    name: str
    enabled: bool
    term_count: int


class LibraryUpdateRequest(BaseModel):
    enabled: bool


class MaskedProvider(ProviderConfig):
    """Provider as returned to clients: the API key is masked."""
    pass


class SettingsResponse(BaseModel):
    preferred_provider_id: str
    double_click_target_language: str
    input_target_language: str
    request_timeout_ms: int
    cache_limit_mb: int
    prompt_template: str
    providers: Dict[str, MaskedProvider] = {}
    terminology_libraries: List[LibrarySummary] = []



class PresetOption(BaseModel):
    key: str
    label: str
    base_url: str
    default_model: str


class PresetListResponse(BaseModel):
    presets: List[PresetOption]
    languages: List[str]


class ProviderCreateRequest(BaseModel):
    preset_key: Optional[str] = None  # None = custom OpenAI-compatible endpoint
    label: str = ""
    base_url: str = ""  # Ignored for presets
    model_id: str = ""
    api_key: str = ""
    make_preferred: bool = False


class ProviderCreateResponse(BaseModel):
    provider_id: str
    provider: MaskedProvider
