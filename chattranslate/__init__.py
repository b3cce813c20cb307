"""
ChatTranslate - chat message translation with glossary protection and caching
"""
__version__ = "0.1.0"
