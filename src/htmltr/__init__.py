"""htmltr - structure-preserving HTML translator over a chat-completion backend."""

from .session import TranslationSession
from .translator import HTMLTranslator, TranslationError, translate_html

__all__ = ["HTMLTranslator", "TranslationError", "TranslationSession", "translate_html"]
