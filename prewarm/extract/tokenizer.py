"""
Incremental anchor-tag tokenizer.

Text can be fed in pieces of any size; a tag split across pieces is held
back by the parser until it is complete. Discovered links go to an injected
sink, so the tokenizer can be exercised without any I/O.
"""

from html.parser import HTMLParser
from typing import Callable, Optional

LinkSink = Callable[[str], None]


class AnchorTokenizer(HTMLParser):
    """
    Reports the ``href`` of every ``<a>`` start tag in document order.

    Character references in attribute values are decoded by the parser
    (``&amp;`` becomes ``&``); the value is otherwise passed on untouched.
    Anchors without an ``href``, or with an empty one, are skipped. A tag
    still open when the document ends is never reported.
    """

    def __init__(self, on_link: LinkSink):
        super().__init__(convert_charrefs=True)
        self._on_link = on_link

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag != "a":
            return
        for name, value in attrs:
            if name == "href":
                # First occurrence wins, like browsers do
                if value:
                    self._on_link(value)
                return


def extract_links(html: str) -> list[str]:
    """Tokenize a complete document in one go and return its links."""
    links: list[str] = []
    tokenizer = AnchorTokenizer(links.append)
    tokenizer.feed(html)
    tokenizer.close()
    return links
