"""
Terminal stand-in for on-device speech synthesis.
"""

from typing import Optional

from rich.console import Console
from rich.panel import Panel


class ConsoleSpeaker:
    """Prints replies instead of speaking them."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def speak(self, text: str, locale: str, rate: float) -> None:
        self.console.print(Panel(text, title=f"🔊 {locale} @ {rate}x", border_style="red"))
