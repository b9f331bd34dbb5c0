"""
Property path resolution.

Turns a path expression such as ``orders[0].items["sku.code"]`` into a tuple
of keys and walks nested mappings, sequences and objects with it. Missing
intermediate values short-circuit to ``None``; resolution never raises for
paths that do not exist in the data.
"""

import re
import threading
from collections.abc import Mapping
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from shared.config import get_config

from .coercion import to_text

MAX_PATH_CACHE_SIZE = 500

# Sequences and strings answer this key with their size
LENGTH_KEY = "length"

PathLike = Union[str, Sequence[Any]]

# A dot, or bracket indexing with an optional quoted key
_RE_IS_DEEP_PROP = re.compile(r'\.|\[(?:[^\[\]]*|(["\'])(?:(?!\1)[^\\]|\\.)*?\1)\]')
_RE_IS_PLAIN_PROP = re.compile(r'^\w*$', re.ASCII)
_RE_PROP_NAME = re.compile(
    # Anything that isn't a dot or bracket
    r'[^.\[\]]+'
    # Unquoted bracket contents
    r'|\[(?:([^"\'][^\[]*)'
    # Quoted bracket contents, with escapes
    r'|(["\'])((?:(?!\2)[^\\]|\\.)*?)\2)\]'
    # Empty segment between consecutive dots or empty brackets
    r'|(?=(?:\.|\[\])(?:\.|\[\]|$))'
)
_RE_ESCAPE_CHAR = re.compile(r'\\(\\)?')
_RE_INDEX = re.compile(r'0|[1-9][0-9]*')


def string_to_path(path: str) -> Tuple[str, ...]:
    """Tokenize a path string into its keys."""
    keys = []
    if path.startswith("."):
        keys.append("")
    for match in _RE_PROP_NAME.finditer(path):
        expression, quote, quoted = match.group(1), match.group(2), match.group(3)
        if quote:
            key = _RE_ESCAPE_CHAR.sub(lambda m: m.group(1) or "", quoted)
        elif expression:
            key = expression.strip()
        else:
            key = match.group(0)
        keys.append(key)
    return tuple(keys)


class PathCache:
    """
    Bounded memoization of path tokenization.

    Paths are often generated dynamically, so the cache is cleared entirely
    once it holds ``max_size`` entries instead of growing without bound.
    Safe for concurrent use.
    """

    def __init__(self, max_size: int = MAX_PATH_CACHE_SIZE):
        self.max_size = max(1, max_size)
        self._entries: Dict[str, Tuple[str, ...]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.resets = 0

    def get(self, path: str) -> Tuple[str, ...]:
        """Return the keys of ``path``, tokenizing it on a miss."""
        with self._lock:
            cached = self._entries.get(path)
            if cached is not None:
                self.hits += 1
                return cached

        keys = string_to_path(path)

        with self._lock:
            if len(self._entries) >= self.max_size:
                self._entries.clear()
                self.resets += 1
            self._entries[path] = keys
            self.misses += 1
        return keys

    def clear(self):
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "resets": self.resets,
            }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries


def to_key(value: Any) -> str:
    """Coerce a path segment to its string key."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    return to_text(value)


def is_key(value: Any, reference: Any = None) -> bool:
    """Whether ``value`` is a single property name rather than a path."""
    if isinstance(value, (list, tuple)):
        return False
    if value is None or isinstance(value, (bool, int, float)):
        return True
    key = to_key(value)
    return (
        bool(_RE_IS_PLAIN_PROP.match(key))
        or not _RE_IS_DEEP_PROP.search(key)
        or (isinstance(reference, Mapping) and key in reference)
    )


class PathResolver:
    """Resolves property paths against reference data."""

    def __init__(self, cache: Optional[PathCache] = None):
        self.cache = cache if cache is not None else PathCache()

    def cast_path(self, path: PathLike, reference: Any = None) -> Tuple[Any, ...]:
        """Normalize a path expression to a tuple of keys."""
        if isinstance(path, (list, tuple)):
            return tuple(path)
        if is_key(path, reference):
            return (path,)
        return self.cache.get(path)

    def resolve(self, reference: Any, path: PathLike) -> Any:
        """
        Walk ``reference`` along ``path``.

        Returns None when any intermediate value is None, when the path is
        empty, or when a key is missing.
        """
        if reference is None:
            return None
        keys = self.cast_path(path, reference)

        index = 0
        length = len(keys)
        current = reference
        while current is not None and index < length:
            current = _lookup(current, to_key(keys[index]))
            index += 1

        return current if index and index == length else None

    def get(self, reference: Any, path: PathLike, default: Any = None) -> Any:
        """Resolve ``path``, returning ``default`` when it is unresolved."""
        result = self.resolve(reference, path)
        return default if result is None else result


def _lookup(container: Any, key: str) -> Any:
    """Read one key from a container, returning None when it is absent."""
    if isinstance(container, Mapping):
        if key in container:
            return container[key]
        if _RE_INDEX.fullmatch(key):
            return container.get(int(key))
        return None

    if isinstance(container, (list, tuple, str)):
        if key == LENGTH_KEY:
            return len(container)
        if _RE_INDEX.fullmatch(key):
            position = int(key)
            if position < len(container):
                return container[position]
        return None

    if not key or key.startswith("_"):
        return None
    return getattr(container, key, None)


_default_resolver: Optional[PathResolver] = None
_default_lock = threading.Lock()


def get_default_resolver() -> PathResolver:
    """Process-wide resolver sized from configuration."""
    global _default_resolver
    if _default_resolver is None:
        with _default_lock:
            if _default_resolver is None:
                _default_resolver = PathResolver(PathCache(get_config().path_cache_size))
    return _default_resolver


def cast_path(path: PathLike, reference: Any = None) -> Tuple[Any, ...]:
    return get_default_resolver().cast_path(path, reference)


def resolve(reference: Any, path: PathLike) -> Any:
    return get_default_resolver().resolve(reference, path)


def get(reference: Any, path: PathLike, default: Any = None) -> Any:
    """
    Get the value at ``path`` of ``reference``.

    >>> get({"a": [{"b": {"c": 3}}]}, "a[0].b.c")
    3
    >>> get({"a": [{"b": {"c": 3}}]}, ["a", "0", "b", "c"])
    3
    >>> get({"a": [{"b": {"c": 3}}]}, "a.b.c", "default")
    'default'
    """
    return get_default_resolver().get(reference, path, default)
