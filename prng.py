"""
Seeded pseudo-random source for the Monte Carlo engine.
Mulberry32 uniform deviates with explicit 32-bit wraparound, plus Box-Muller
standard normal deviates. Scalar and batch draws share one sequence.
"""
import math

import numpy as np

SEED = 42

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0
_LOG_FLOOR = 1e-10


def _mix32(s: int) -> int:
    """Mulberry32 output function for one state word (pure int arithmetic)"""
    t = ((s ^ (s >> 15)) * (s | 1)) & _MASK32
    t = ((t + (((t ^ (t >> 7)) * (t | 61)) & _MASK32)) & _MASK32) ^ t
    return (t ^ (t >> 14)) & _MASK32


def _mix32_array(s: np.ndarray) -> np.ndarray:
    """Vectorised Mulberry32 output function; uint32 products wrap mod 2**32"""
    t = (s ^ (s >> np.uint32(15))) * (s | np.uint32(1))
    t = (t + (t ^ (t >> np.uint32(7))) * (t | np.uint32(61))) ^ t
    return t ^ (t >> np.uint32(14))


class Mulberry32:
    """Deterministic uniform/Gaussian generator"""

    def __init__(self, seed: int = SEED):
        self.seed = seed & _MASK32
        self._state = self.seed

    @property
    def state(self) -> int:
        return self._state

    def next_uint32(self) -> int:
        self._state = (self._state + _INCREMENT) & _MASK32
        return _mix32(self._state)

    def uniform(self) -> float:
        """Next uniform deviate in [0, 1)"""
        return self.next_uint32() / _TWO_POW_32

    def gaussian(self) -> float:
        """Next standard normal deviate (consumes two uniforms)"""
        u1 = self.uniform()
        u2 = self.uniform()
        return math.sqrt(-2.0 * math.log(u1 or _LOG_FLOOR)) * math.cos(2.0 * math.pi * u2)

    def next_uint32_batch(self, n: int) -> np.ndarray:
        """
        Next n raw 32-bit outputs in call order.

        The state after k calls is seed + k * increment (mod 2**32), so a batch
        is computed directly from the call counters.
        """
        steps = np.arange(1, n + 1, dtype=np.uint64) * np.uint64(_INCREMENT)
        states = ((steps + np.uint64(self._state)) & np.uint64(_MASK32)).astype(np.uint32)
        self._state = (self._state + n * _INCREMENT) & _MASK32
        return _mix32_array(states)

    def uniforms(self, n: int) -> np.ndarray:
        """Next n uniform deviates as float64"""
        return self.next_uint32_batch(n).astype(np.float64) / _TWO_POW_32

    def gaussians(self, n: int) -> np.ndarray:
        """
        Next n standard normal deviates.

        Deviate i uses uniforms 2i and 2i+1, the same order as n calls to
        gaussian().
        """
        u = self.uniforms(2 * n)
        u1 = u[0::2]
        u2 = u[1::2]
        u1 = np.where(u1 == 0.0, _LOG_FLOOR, u1)
        return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
