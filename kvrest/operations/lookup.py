"""
Multi-key point lookups.
"""

from collections.abc import Iterable

from kvrest.interfaces.store import KeyValueStore


async def multi_get(store: KeyValueStore, keys: Iterable[bytes]) -> list[tuple[bytes, bytes]]:
    """
    Look up several keys at once.

    Keys that are not found are left out of the result rather than
    reported as errors, so asking for N keys of which M are absent yields
    N - M pairs. A key requested more than once is returned once.

    Args:
        store: Store to read from.
        keys: Keys to fetch, in the order results should be returned.

    Returns:
        (key, value) pairs for every key that exists.
    """
    results = []
    seen = set()
    for key in keys:
        if key in seen:
            continue
        seen.add(key)
        value = await store.get(key)
        if value is not None:
            results.append((key, value))
    return results
