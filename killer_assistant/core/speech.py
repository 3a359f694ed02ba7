"""
Speech synthesis language selection.
"""

import re

BENGALI_LOCALE = "bn-BD"
DEFAULT_LOCALE = "en-US"
SPEECH_RATE = 0.8

_BENGALI_BLOCK = re.compile("[\u0980-\u09FF]")


def pick_voice_locale(text: str) -> str:
    """Bengali locale if any character falls in the Bengali Unicode block."""
    if _BENGALI_BLOCK.search(text or ""):
        return BENGALI_LOCALE
    return DEFAULT_LOCALE
