"""
evosim_core/prng.py - Deterministic pseudo-random stream (Mulberry32)
"""
from typing import Sequence, TypeVar

T = TypeVar('T')

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0


def _imul(a: int, b: int) -> int:
    """32-bit integer multiplication, wrapped to an unsigned result"""
    return (a * b) & _MASK32


class PRNG:
    """Seeded Mulberry32 generator whose whole state is one 32-bit integer"""

    def __init__(self, seed: int):
        self._state = int(seed) & _MASK32

    def set_seed(self, state: int) -> None:
        """Reset the stream to a seed or a previously captured state"""
        self._state = int(state) & _MASK32

    def get_state(self) -> int:
        """Raw internal state, suitable for set_seed() to resume mid-stream"""
        return self._state

    def next(self) -> float:
        """Next float in [0, 1)"""
        self._state = (self._state + _INCREMENT) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32

    def next_int(self, min_value: int, max_value: int) -> int:
        """Integer in [min_value, max_value)"""
        return int(self.next() * (max_value - min_value)) + min_value

    def next_boolean(self) -> bool:
        return self.next() >= 0.5

    def pick(self, items: Sequence[T]) -> T:
        """Uniformly chosen element of a non-empty sequence"""
        if not items:
            raise ValueError("Cannot pick from an empty sequence")
        return items[self.next_int(0, len(items))]
