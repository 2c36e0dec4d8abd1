"""
CHIP-8 VM — Run Configuration

Speed profiles map a name to a dict of settings plus a description. CLI flags are
applied on top with EmulatorConfig.from_profile(name, **overrides).
"""

from dataclasses import dataclass, replace
from typing import Optional

from .periph.timer import TIMER_HZ


SPEED_PROFILES = {
    "unthrottled": {
        "instructions_per_second": 0,
        "description": "No pacing, run as fast as the host allows",
    },
    "cosmac": {
        "instructions_per_second": 500,
        "description": "Roughly the original COSMAC VIP interpreter speed",
    },
    "standard": {
        "instructions_per_second": 700,
        "description": "Common default for modern interpreters",
    },
    "fast": {
        "instructions_per_second": 2000,
        "description": "For programs that poll the delay timer in tight loops",
    },
}

DEFAULT_PROFILE = "standard"


@dataclass
class EmulatorConfig:
    instructions_per_second: int = 0      # 0 = unthrottled
    timer_hz: float = TIMER_HZ
    realtime_timers: bool = False         # run TimerClock during run()
    max_instructions: Optional[int] = None
    trace: bool = False
    rng_seed: Optional[int] = None

    def __post_init__(self):
        if self.instructions_per_second < 0:
            raise ValueError("instructions_per_second must be >= 0")
        if self.timer_hz <= 0:
            raise ValueError("timer_hz must be positive")
        if self.max_instructions is not None and self.max_instructions < 0:
            raise ValueError("max_instructions must be >= 0")

    @property
    def instruction_interval(self) -> Optional[float]:
        if not self.instructions_per_second:
            return None
        return 1.0 / self.instructions_per_second

    @classmethod
    def from_profile(cls, name: str = DEFAULT_PROFILE, **overrides) -> "EmulatorConfig":
        try:
            profile = SPEED_PROFILES[name]
        except KeyError:
            raise ValueError(
                f"unknown speed profile {name!r} "
                f"(choose from {', '.join(SPEED_PROFILES)})") from None
        base = cls(instructions_per_second=profile["instructions_per_second"],
                   realtime_timers=True)
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(base, **overrides)
