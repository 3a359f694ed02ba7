"""
SDK for Killer Assistant.

Provides the metered relay to the speech-to-text and chat-completion engines.
"""

from .openai_client import MeteredOpenAI

__all__ = ["MeteredOpenAI"]
