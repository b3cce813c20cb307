from pydantic import BaseModel, Field
from typing import Optional, Dict, List
from enum import Enum

from ..config import (
    DEFAULT_DOUBLE_CLICK_TARGET_LANGUAGE,
    DEFAULT_INPUT_TARGET_LANGUAGE,
    DEFAULT_PROMPT_TEMPLATE,
    REQUEST_TIMEOUT_MS,
    CACHE_LIMIT_MB,
    clamp_cache_limit,
)


class SegmentType(str, Enum):
    QUOTE = "quote"
    MAIN = "main"
    DIRECT = "direct"  # Standalone text (composer input), never part of a message


class TranslationStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


class ProviderType(str, Enum):
    PRESET = "preset"
    CUSTOM = "custom"


class Segment(BaseModel):
    type: SegmentType = SegmentType.MAIN
    text: str = ""
    translation: Optional[str] = None  # None until resolved

    def resolved(self, translation: str) -> "Segment":
        """Return a copy of this segment carrying its final translation."""
        return self.model_copy(update={"translation": translation})


class ExtractedMessage(BaseModel):
    """What a message adapter pulls out of a host message node."""
    segments: List[Segment] = []
    main_text: str = ""
    quoted_texts: List[str] = []


class MessageState(BaseModel):
    message_key: str
    status: TranslationStatus = TranslationStatus.IDLE
    segments: List[Segment] = []
    target_language: str = ""
    error: Optional[str] = None
    from_cache: bool = False


class ProviderConfig(BaseModel):
    label: str = ""
    type: ProviderType = ProviderType.CUSTOM
    preset_key: Optional[str] = None
    api_key: str = ""
    base_url: str = ""
    model_id: str = ""


class CacheEntry(BaseModel):
    segments: List[Segment] = []
    text_signature: str = ""
    provider_signature: str = ""
    target_language: str = ""
    timestamp: float = 0.0
    direct: bool = False

    def matches(self, text_signature: str, provider_signature: str, target_language: str) -> bool:
        return (
            self.text_signature == text_signature
            and self.provider_signature == provider_signature
            and self.target_language == target_language
        )


class Term(BaseModel):
    source: str
    target: str
    target_language: Optional[str] = None  # None = applies to every target language


class TerminologyLibrary(BaseModel):
    id: str
    name: str = ""
    enabled: bool = True
    terms: List[Term] = []


class Replacement(BaseModel):
    placeholder: str
    replacement: str


class PreparedText(BaseModel):
    text: str
    replacements: List[Replacement] = []
    instructions: str = ""


class TranslatorSettings(BaseModel):
    preferred_provider_id: str = ""
    double_click_target_language: str = DEFAULT_DOUBLE_CLICK_TARGET_LANGUAGE
    input_target_language: str = DEFAULT_INPUT_TARGET_LANGUAGE
    request_timeout_ms: int = REQUEST_TIMEOUT_MS
    cache_limit_mb: int = Field(default_factory=lambda: clamp_cache_limit(CACHE_LIMIT_MB))
    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    providers: Dict[str, ProviderConfig] = {}
    terminology_libraries: List[TerminologyLibrary] = []

    def active_provider(self) -> Optional[ProviderConfig]:
        provider_id = self.preferred_provider_id
        if provider_id and provider_id in self.providers:
            return self.providers[provider_id]
        return None
