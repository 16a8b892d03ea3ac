# cache.py
# Identity-keyed memoization for derived quantities.
"""
Results of an expensive computation are stored together with the inputs they
were computed from. An entry is valid only while every input is still the very
same object, so there is nothing to invalidate explicitly: a new iterate is a
new object and simply misses.

Dependency kinds
----------------
- objects with an integer ``tag`` attribute (iterates) compare by tag; tags are
  never reused, so no reference to the object is kept;
- any other object (numpy arrays, matrices) compares by identity, guarded by a
  weak reference so that a dead input can never be aliased by a recycled id();
- ``None`` is a dependency like any other;
- scalars (norm type, mu, tau, ...) compare by ordinary equality.
"""

from __future__ import annotations

import weakref
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional, Sequence, Tuple


def _dep_token(dep: Any) -> Tuple[Hashable, Optional[weakref.ref]]:
    if dep is None:
        return ("none",), None
    tag = getattr(dep, "tag", None)
    if isinstance(tag, int):
        return ("tag", tag), None
    return ("id", id(dep)), weakref.ref(dep)


class CachedResults:
    """
    Small LRU store of results keyed on (dependencies, scalars).

    Parameters
    ----------
    max_cache_size : int
        Number of distinct keys kept (≥ 1). One or two is enough for a quantity
        that is only ever asked for at the current or the trial point.
    name : str
        Label used in ``repr``.
    """

    __slots__ = ("max_cache_size", "name", "hits", "misses", "_entries")

    def __init__(self, max_cache_size: int = 1, name: str = ""):
        if max_cache_size < 1:
            raise ValueError(f"max_cache_size must be positive, got {max_cache_size}")
        self.max_cache_size = int(max_cache_size)
        self.name = name
        self.hits = 0
        self.misses = 0
        self._entries: "OrderedDict[tuple, Tuple[Any, tuple]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"CachedResults({self.name!r}, size={len(self)}/{self.max_cache_size}, hits={self.hits}, misses={self.misses})"

    # ---------- key handling ----------
    @staticmethod
    def _key(deps: Sequence[Any], scalars: Sequence[Hashable]):
        tokens, refs = [], []
        for d in deps:
            tok, ref = _dep_token(d)
            tokens.append(tok)
            refs.append(ref)
        return (tuple(tokens), tuple(scalars)), tuple(refs)

    @staticmethod
    def _alive(deps: Sequence[Any], refs: tuple) -> bool:
        for d, r in zip(deps, refs):
            if r is not None and r() is not d:
                return False
        return True

    def _purge_dead(self) -> None:
        dead = [k for k, (_, refs) in self._entries.items()
                if any(r is not None and r() is None for r in refs)]
        for k in dead:
            del self._entries[k]

    # ---------- public API ----------
    def get_cached(self, deps: Sequence[Any], scalars: Sequence[Hashable] = ()) -> Tuple[bool, Any]:
        """Return ``(True, value)`` for a valid entry, ``(False, None)`` otherwise (no counting)."""
        key, _ = self._key(deps, scalars)
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        value, refs = entry
        if not self._alive(deps, refs):
            del self._entries[key]
            return False, None
        self._entries.move_to_end(key)
        return True, value

    def add(self, value: Any, deps: Sequence[Any], scalars: Sequence[Hashable] = ()) -> None:
        key, refs = self._key(deps, scalars)
        self._purge_dead()
        self._entries[key] = (value, refs)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_cache_size:
            self._entries.popitem(last=False)

    def get_or_compute(
        self,
        deps: Sequence[Any],
        compute_fn: Callable[[], Any],
        scalars: Sequence[Hashable] = (),
    ) -> Any:
        """Cached value for the key, computing (exactly once) and storing it on a miss."""
        found, value = self.get_cached(deps, scalars)
        if found:
            self.hits += 1
            return value
        self.misses += 1
        value = compute_fn()
        self.add(value, deps, scalars)
        return value

    def clear(self) -> None:
        self._entries.clear()
