"""Term extraction shared by indexing and querying."""

import re

_SEPARATORS = re.compile(r"[^a-z0-9_]+")


def tokenize(text: str) -> list[str]:
    """Lowercase ``text`` and split it into ``[a-z0-9_]`` runs.

    Every other character is a separator and empty tokens are dropped, so
    ``tokenize(" ".join(tokenize(t))) == tokenize(t)``.
    """
    return [t for t in _SEPARATORS.split(text.lower()) if t]
