"""markup -> readable text.

servers that should answer with json sometimes hand back an html error page
instead (login redirect, proxy error, stack trace page). we strip it down to
the visible text so it can be shown to a human as an error message.
"""

import logging
import re

from bs4 import BeautifulSoup

logger = logging.getLogger("authgateway.utils.html")

# never visible to a user
INVISIBLE_TAGS = ["script", "style", "noscript", "template", "head"]

_WHITESPACE_RE = re.compile(r"\s+")


def _remove_invisible(soup: BeautifulSoup):
    for tag in soup.find_all(INVISIBLE_TAGS):
        tag.decompose()


def html_to_text(html: str) -> str:
    """extract the visible text of an html fragment or document.

    whitespace runs collapse to a single space. plain text without any markup
    comes back unchanged (modulo whitespace).

    :param html: raw markup.
    :return: visible text, "" when there is none.
    :rtype: str
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    _remove_invisible(soup)
    text = _WHITESPACE_RE.sub(" ", soup.get_text(" ", strip=True)).strip()
    logger.debug("extracted %d char(s) of text from %d char(s) of markup", len(text), len(html))
    return text
