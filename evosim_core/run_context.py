"""
evosim_core/run_context.py - Run-scoped random stream, tick and id counters
"""
import math
from typing import Any, Dict, Optional

from .prng import PRNG


def _non_negative_int(value: Any) -> int:
    return max(0, int(math.floor(value)))


class RunContext:
    """Deterministic scope binding one random stream and monotonic counters to a run.

    Every identifier and every random draw of a replayable run goes through
    a RunContext. Two simulations running side by side must each own one.
    """

    def __init__(self, seed: int, initial_tick: int = 0, initial_id_counter: int = 0,
                 prng_state: Optional[int] = None):
        self.seed = int(seed)
        self._prng = PRNG(self.seed)
        self._tick = _non_negative_int(initial_tick)
        self._id_counter = _non_negative_int(initial_id_counter)
        if prng_state is not None:
            self._prng.set_seed(prng_state)

    @property
    def prng(self) -> PRNG:
        return self._prng

    def tick(self) -> int:
        """Advance the logical clock and return the new tick"""
        self._tick += 1
        return self._tick

    def get_tick(self) -> int:
        return self._tick

    def set_tick(self, value: int) -> None:
        self._tick = _non_negative_int(value)

    @property
    def id_counter(self) -> int:
        return self._id_counter

    def next_id(self, prefix: str) -> str:
        """Collision-free id for this seed, e.g. 'ast-0000002a-7'"""
        self._id_counter += 1
        return f"{prefix}-{self.seed & 0xFFFFFFFF:08x}-{self._id_counter}"

    def get_state(self) -> Dict[str, int]:
        """Capture seed, counters and raw stream state as a plain record"""
        return {
            'seed': self.seed,
            'tick': self._tick,
            'id_counter': self._id_counter,
            'prng_state': self._prng.get_state()
        }

    def restore(self, state: Dict[str, Any]) -> None:
        """Resume counters and stream exactly where get_state() captured them"""
        self._tick = _non_negative_int(state['tick'])
        self._id_counter = _non_negative_int(state['id_counter'])
        self._prng.set_seed(state['prng_state'])

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> 'RunContext':
        return cls(state['seed'], state['tick'], state['id_counter'], state['prng_state'])

    def __repr__(self) -> str:
        return (f"RunContext(seed={self.seed}, tick={self._tick}, "
                f"id_counter={self._id_counter})")
