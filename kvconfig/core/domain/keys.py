"""
Translation between flat configuration keys and backend paths.

Application code addresses configuration with dot-separated keys such as
``db.pool[2].size``. Every backend stores them as a hierarchy; array indices
become a synthetic ``[n]`` segment so list children stay distinguishable from
map children:

    db.pool[2].size  ->  <namespace>/db/pool/[2]/size

Backends that need extra escaping apply it per segment through the codec
without changing the contract: ``decode(encode(key)) == key``.
"""

from typing import Iterable, List, Optional
from urllib.parse import quote, unquote

INDEX_MARKER = ".["


def split_key(key: str) -> List[str]:
    """
    Split a flat key into hierarchical segments.

    Args:
        key: Dot-separated configuration key

    Returns:
        Segments in order, with ``[n]`` indices as their own segments
    """
    return [token for token in key.replace("[", INDEX_MARKER).split(".") if token]


def join_segments(segments: Iterable[str]) -> str:
    """Inverse of :func:`split_key`."""
    return ".".join(segments).replace(INDEX_MARKER, "[")


class KeyCodec:
    """
    Bidirectional key/path codec bound to one namespace.

    Args:
        namespace: Resolved namespace, without leading or trailing separator
        separator: Path separator used by the backend
        leading_separator: Root paths at the separator (ZooKeeper style)
        escape_segments: URL-quote every segment (etcd style)
    """

    def __init__(
        self,
        namespace: str,
        separator: str = "/",
        leading_separator: bool = False,
        escape_segments: bool = False
    ) -> None:
        self.namespace = namespace.strip(separator)
        self.separator = separator
        self.leading_separator = leading_separator
        self.escape_segments = escape_segments

    @property
    def root(self) -> str:
        """Path of the namespace node itself."""
        prefix = self.separator if self.leading_separator else ""
        return f"{prefix}{self.namespace}"

    def segments(self, key: str) -> List[str]:
        """Backend segments for a key, escaped if the backend needs it."""
        parts = split_key(key)
        if self.escape_segments:
            parts = [quote(part, safe="") for part in parts]
        return parts

    def encode(self, key: str) -> str:
        """Full backend path for a flat key."""
        parts = self.segments(key)
        if not parts:
            return self.root
        return self.root + self.separator + self.separator.join(parts)

    def decode(self, path: str) -> str:
        """
        Flat key for a backend path under this namespace.

        Raises:
            ValueError: If the path lies outside the namespace
        """
        relative = self.relative_segments(path)
        if relative is None:
            raise ValueError(f"Path {path!r} is outside namespace {self.root!r}")
        if self.escape_segments:
            relative = [unquote(part) for part in relative]
        return join_segments(relative)

    def relative_segments(self, path: str) -> Optional[List[str]]:
        """Segments of a path below the namespace root, or None if not below it."""
        root = self.root
        if path == root:
            return []
        if not path.startswith(root + self.separator):
            return None
        remainder = path[len(root) + len(self.separator):]
        return [part for part in remainder.split(self.separator) if part]

    def unescape(self, segment: str) -> str:
        """Segment as it appears in a flat key."""
        return unquote(segment) if self.escape_segments else segment


def parse_index(name: str) -> Optional[int]:
    """Array index carried by a child name (``3`` or ``[3]``), else None."""
    text = name
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    if not text.isdigit():
        return None
    return int(text)


def detect_list_size(children: Iterable[str]) -> Optional[int]:
    """
    Size of the contiguous array formed by a node's children.

    Child names are parsed as indices; non-numeric names are skipped. Only
    indices running ``0, 1, 2, ...`` without a gap count, so a gap or a
    non-zero start means the node is not a list.

    Returns:
        Number of contiguous indices starting at zero, or None if there are none
    """
    indexes = sorted(
        index for index in (parse_index(child) for child in children) if index is not None
    )
    size = 0
    for index in indexes:
        if index == size:
            size += 1
        elif index > size:
            break
    return size if size > 0 else None
