"""Readable messages from reverse-proxy HTML error pages.

When nginx in front of the dashboard is overloaded, or a page is missing,
it answers with an HTML document instead of JSON. For example::

    <html>
    <head><title>Error</title></head>
    <body>
    <h1>An error occurred.</h1>
    <p>Sorry, the page you are looking for is currently unavailable.<br/>
    Please try again later.</p>
    <p>If you are the system administrator of this resource then you should
    check the <a href="http://nginx.org/r/error_log">error log</a> for details.</p>
    <p><em>Faithfully yours, nginx.</em></p>
    </body>
    </html>

yields "An error occurred. Sorry, the page you are looking for is currently
unavailable. If you are the system administrator ... check the error log
for details. Faithfully yours, nginx."
"""

from html.parser import HTMLParser

import structlog

logger = structlog.get_logger(__name__)

EMPTY_HTML_MESSAGE = "Empty Nexus Dashboard HTML response"

SIGNAL_TAGS = frozenset({"a", "p", "body"})


class _MessageCollector(HTMLParser):
    """Token stream walker that keeps text following a signal tag.

    Once a signal tag (start or end) is seen, blank text and other tags are
    skipped until the next non-blank text token, which is collected.
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.fragments: list[str] = []
        self._prev_tag = ""

    def _tag(self, tag: str) -> None:
        if self._prev_tag in SIGNAL_TAGS:
            return
        self._prev_tag = tag

    def handle_starttag(self, tag, attrs):
        self._tag(tag)

    def handle_endtag(self, tag):
        self._tag(tag)

    def handle_startendtag(self, tag, attrs):
        self._tag(tag)

    def handle_data(self, data):
        if self._prev_tag in SIGNAL_TAGS:
            text = data.strip()
            if not text:
                return
            self.fragments.append(text)
        self._prev_tag = ""


def extract_message(body: str) -> str:
    """Extract a human-readable message from an HTML error page.

    Args:
        body: Raw response body.

    Returns:
        Space-joined text found after ``<a>``, ``<p>`` and ``<body>`` tags,
        or a fixed placeholder when the page has no such text.
    """
    collector = _MessageCollector()
    collector.feed(body)
    collector.close()
    message = " ".join(collector.fragments) or EMPTY_HTML_MESSAGE
    logger.debug("Parsed HTML error page", message=message)
    return message
