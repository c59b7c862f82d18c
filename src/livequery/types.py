"""Common type definitions for the livequery library."""

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import TypeVar

from livequery.protocol import Document
from livequery.values import GeoPoint

# Converted document type produced by a converter
T = TypeVar("T")

# Last path segment of a document name
DocumentId = str

# Semantic (canonical) value tree
CanonicalPrimitive = bool | int | float | str | None
CanonicalComposite = GeoPoint | datetime
Canonical = CanonicalPrimitive | CanonicalComposite | Sequence["Canonical"] | Mapping[str, "Canonical"]

# Maps a wire document to its desired representation. Returning None means
# the document no longer qualifies and is treated as deleted.
Converter = Callable[[Document], T | None]

# Call metadata in grpc style, e.g. the routing header
Metadata = Sequence[tuple[str, str]]
