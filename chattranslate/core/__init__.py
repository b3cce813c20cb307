"""
ChatTranslate Core - translation orchestration and caching engine
"""
from .orchestrator import MessageTranslator
from .translate import Translator
from .translation_cache import TranslationCache
from .terminology import TerminologyResolver
from .adapter import MessageAdapter, SegmentRenderer, PayloadMessageAdapter

__all__ = [
    'MessageTranslator',
    'Translator',
    'TranslationCache',
    'TerminologyResolver',
    'MessageAdapter',
    'SegmentRenderer',
    'PayloadMessageAdapter',
]
