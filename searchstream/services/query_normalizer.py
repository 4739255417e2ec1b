"""
Query fragment normalization.

normalize() is the pure trim applied to every raw keystroke fragment.
FragmentFilter adds the per-session "distinct until changed" rule on top, so
that repeated identical fragments never restart the debounce timer.
"""

from typing import Optional


def normalize(raw: Optional[str]) -> str:
    """Trim a raw fragment; None and whitespace-only input become "".

    An empty result means "no-op": callers must not start any downstream work.
    """
    if raw is None:
        return ""
    return str(raw).strip()


class FragmentFilter:
    """Per-session ingestion filter: normalize, drop blanks, drop repeats."""

    def __init__(self):
        self._last: Optional[str] = None

    @property
    def last(self) -> Optional[str]:
        return self._last

    def accept(self, raw: Optional[str]) -> Optional[str]:
        """Return the normalized fragment, or None when it must be dropped."""
        fragment = normalize(raw)
        if not fragment or fragment == self._last:
            return None
        self._last = fragment
        return fragment
