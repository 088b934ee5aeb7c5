from __future__ import annotations
import pyfiglet
from textual.widgets import Static

_ASCII = pyfiglet.figlet_format("Add Device", font="small")


class WizardHeader(Static):
    """ASCII-art header shown on every wizard screen."""

    DEFAULT_CSS = """
    WizardHeader {
        color: #0c8ce0;
        text-style: bold;
        width: 100%;
        padding: 0 2;
    }
    """

    def __init__(self, subtitle: str = "") -> None:
        text = _ASCII if not subtitle else f"{_ASCII}{subtitle}"
        super().__init__(text)
