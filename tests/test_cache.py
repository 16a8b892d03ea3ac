# test_cache.py
# Identity-keyed memoization: hits, misses, eviction and dead inputs.

import gc

import numpy as np
import pytest

from ipcalc.blocks.cache import CachedResults
from ipcalc.blocks.state import Iterate


class Counter:
    def __init__(self):
        self.calls = 0

    def __call__(self, value=1.0):
        def fn():
            self.calls += 1
            return value
        return fn


def test_compute_runs_once_per_key():
    cache, count = CachedResults(), Counter()
    v = np.ones(3)
    assert cache.get_or_compute((v,), count(2.0)) == 2.0
    assert cache.get_or_compute((v,), count(3.0)) == 2.0
    assert count.calls == 1
    assert (cache.hits, cache.misses) == (1, 1)


def test_identity_not_value_equality():
    cache, count = CachedResults(), Counter()
    a, b = np.ones(3), np.ones(3)
    cache.get_or_compute((a,), count())
    cache.get_or_compute((b,), count())
    assert count.calls == 2


def test_scalars_compare_by_equality():
    cache, count = CachedResults(max_cache_size=2), Counter()
    v = np.zeros(2)
    cache.get_or_compute((v,), count(1.0), scalars=(0.1,))
    cache.get_or_compute((v,), count(2.0), scalars=(0.1,))
    cache.get_or_compute((v,), count(3.0), scalars=(0.2,))
    assert count.calls == 2
    assert cache.get_cached((v,), (0.1,)) == (True, 1.0)
    assert cache.get_cached((v,), (0.2,)) == (True, 3.0)


def test_none_is_a_dependency():
    cache, count = CachedResults(), Counter()
    cache.get_or_compute((None,), count(5.0))
    assert cache.get_or_compute((None,), count(6.0)) == 5.0
    assert count.calls == 1


def test_iterates_compare_by_tag():
    cache, count = CachedResults(), Counter()
    it = Iterate(*(np.zeros(1) for _ in range(8)))
    cache.get_or_compute((it,), count(1.0))
    assert cache.get_or_compute((it,), count(2.0)) == 1.0

    other = it.replace()
    assert other.tag != it.tag
    assert other.x is it.x
    assert cache.get_or_compute((other,), count(3.0)) == 3.0
    assert count.calls == 2


def test_lru_eviction():
    cache, count = CachedResults(max_cache_size=2), Counter()
    a, b, c = np.zeros(1), np.zeros(1), np.zeros(1)
    cache.get_or_compute((a,), count(1.0))
    cache.get_or_compute((b,), count(2.0))
    cache.get_or_compute((a,), count(9.0))  # touch a
    cache.get_or_compute((c,), count(3.0))  # evicts b
    assert len(cache) == 2
    assert cache.get_cached((a,)) == (True, 1.0)
    assert cache.get_cached((b,)) == (False, None)
    assert count.calls == 3


def test_dead_input_never_aliases():
    cache = CachedResults()
    v = np.ones(4)
    cache.add("old", (v,))
    del v
    gc.collect()
    w = np.ones(4)
    found, _ = cache.get_cached((w,))
    assert not found


def test_dependency_order_matters():
    cache, count = CachedResults(max_cache_size=2), Counter()
    a, b = np.zeros(1), np.zeros(1)
    cache.get_or_compute((a, b), count(1.0))
    cache.get_or_compute((b, a), count(2.0))
    assert count.calls == 2


def test_clear_and_bad_size():
    cache = CachedResults(name="q")
    v = np.zeros(1)
    cache.add(1.0, (v,))
    cache.clear()
    assert len(cache) == 0
    assert "q" in repr(cache)
    with pytest.raises(ValueError):
        CachedResults(max_cache_size=0)
