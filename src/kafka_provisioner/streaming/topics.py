"""Topic naming conventions for provisioned streams."""

from __future__ import annotations

from urllib.parse import unquote, urlsplit

PATH_FORMAT_HINT = "URLs should be of the form /<namespace>/<stream-name>"

# Not allowed in Kubernetes resource names, so two distinct
# (namespace, stream) pairs can never map to the same topic.
TOPIC_SEPARATOR = "_"


class InvalidStreamPath(ValueError):
    """Raised when a request path is not ``/<namespace>/<stream-name>``."""

    def __init__(self, path: str) -> None:
        super().__init__(f"{PATH_FORMAT_HINT} (got {path!r})")
        self.path = path


def parse_stream_path(path: str) -> tuple[str, str]:
    """Split ``/<namespace>/<stream-name>`` into its two segments.

    The path is percent-decoded before splitting and a query string is
    ignored. Anything other than exactly two non-empty segments raises :class:`InvalidStreamPath`.
    """
    raw = unquote(urlsplit(path).path)
    parts = raw[1:].split("/") if raw.startswith("/") else raw.split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidStreamPath(path)
    return parts[0], parts[1]


def stream_topic_name(namespace: str, stream: str) -> str:
    """Build a stream topic name: ``<namespace>_<stream>``."""
    return f"{namespace}{TOPIC_SEPARATOR}{stream}"
