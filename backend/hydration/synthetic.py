"""
synthetic.py — Synthetic Readings for Device-less Operation
============================================================

When no sensor board is attached, one-shot readings are built from a
small table of plausible TCS34725 scenarios, picked with weights skewed
toward healthy hydration and perturbed with bounded jitter.
"""

import logging
from typing import Optional

import numpy as np

from .wire import normalize_tristimulus
from .models import RawSample

logger = logging.getLogger("hydration.synthetic")

# 16-bit channel counts with the clear channel, and the pH range
# [ph_low, ph_low + ph_span) each scenario draws from.
DEFAULT_SCENARIOS = [
    {"name": "pale yellow", "r": 45000, "g": 50000, "b": 20000, "c": 55000,
     "ph_low": 6.0, "ph_span": 1.5, "weight": 0.40},
    {"name": "yellow", "r": 40000, "g": 45000, "b": 15000, "c": 50000,
     "ph_low": 6.5, "ph_span": 1.0, "weight": 0.30},
    {"name": "dark yellow", "r": 35000, "g": 38000, "b": 12000, "c": 45000,
     "ph_low": 7.0, "ph_span": 0.8, "weight": 0.15},
    {"name": "amber", "r": 30000, "g": 32000, "b": 8000, "c": 40000,
     "ph_low": 7.5, "ph_span": 0.6, "weight": 0.10},
    {"name": "dark amber", "r": 25000, "g": 20000, "b": 5000, "c": 35000,
     "ph_low": 8.0, "ph_span": 0.5, "weight": 0.05},
]

PH_JITTER = 0.1
PH_FLOOR = 4.0
PH_CEILING = 9.0
COLOR_JITTER = 5000      # red / green
BLUE_JITTER = 2000


class SyntheticSource:
    """
    Weighted random reading generator.

    Attributes:
        scenarios (list[dict]): Scenario table; an empty table yields no samples.
        rng (numpy.random.Generator): Seedable random source.
    """

    def __init__(self, scenarios: list = None, rng: np.random.Generator = None,
                 seed: int = None):
        self.scenarios = DEFAULT_SCENARIOS if scenarios is None else list(scenarios)
        self.rng = rng or np.random.default_rng(seed)

    def _pick(self) -> dict:
        weights = np.array([s.get("weight", 1.0) for s in self.scenarios], dtype=np.float64)
        index = self.rng.choice(len(self.scenarios), p=weights / weights.sum())
        return self.scenarios[int(index)]

    def sample(self, captured_at) -> Optional[RawSample]:
        """Draw one reading, or None when the scenario table is empty."""
        if not self.scenarios:
            return None

        scenario = self._pick()
        ph = scenario["ph_low"] + self.rng.random() * scenario["ph_span"]
        ph += (self.rng.random() - 0.5) * PH_JITTER
        ph = float(np.clip(ph, PH_FLOOR, PH_CEILING))

        r = max(0.0, scenario["r"] + (self.rng.random() - 0.5) * COLOR_JITTER)
        g = max(0.0, scenario["g"] + (self.rng.random() - 0.5) * COLOR_JITTER)
        b = max(0.0, scenario["b"] + (self.rng.random() - 0.5) * BLUE_JITTER)
        clear = scenario.get("c")

        sample = RawSample(
            acidity=round(ph, 2),
            color=normalize_tristimulus(r, g, b, clear),
            captured_at=captured_at,
            clear=clear,
            metadata={"synthetic": scenario.get("name", "")},
        )
        logger.debug(f"Synthetic {scenario.get('name')}: pH={sample.acidity}, "
                     f"RGB=({sample.color.r},{sample.color.g},{sample.color.b})")
        return sample
