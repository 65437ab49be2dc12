"""small helpers that sit outside the gateway state machine.

* html_to_text: turn an html error page into a readable message
"""

from .html import html_to_text

__all__ = [
    "html_to_text",
]
