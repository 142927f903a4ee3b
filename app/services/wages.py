"""
Wage calculator.

    multiplier:  DAY 1.0 | NIGHT 1.25 | FULL_DAY 1.5 | HALF_DAY 0.5
    hours <= base:  count * rate * (hours / base) * multiplier * fraction
    hours >  base:  count * rate * multiplier * fraction
                    + count * (rate / base) * (hours - base) * overtime_rate * multiplier

The overtime component is not scaled by the shift fraction. No rounding is
applied; currency rounding belongs to presentation.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Union

from ..errors import InvalidAmount


class ShiftKind(str, Enum):
    DAY = "DAY"
    NIGHT = "NIGHT"
    FULL_DAY = "FULL_DAY"
    HALF_DAY = "HALF_DAY"


def _default_multipliers() -> Dict[ShiftKind, float]:
    return {
        ShiftKind.DAY: 1.0,
        ShiftKind.NIGHT: 1.25,
        ShiftKind.FULL_DAY: 1.5,
        ShiftKind.HALF_DAY: 0.5,
    }


@dataclass(frozen=True)
class WageRules:
    base_hours: float = 8.0
    overtime_rate: float = 1.5
    multipliers: Dict[ShiftKind, float] = field(default_factory=_default_multipliers)

    def multiplier(self, shift: Union[ShiftKind, str]) -> float:
        return self.multipliers[ShiftKind(shift)]


DEFAULT_RULES = WageRules()


def calculate_wage(
    count: int,
    rate_per_worker: float,
    hours_worked: float,
    shift: Union[ShiftKind, str] = ShiftKind.DAY,
    shift_fraction: float = 1.0,
    rules: WageRules = DEFAULT_RULES,
) -> float:
    if count < 0:
        raise InvalidAmount("count", count, "count must not be negative")
    if rate_per_worker < 0:
        raise InvalidAmount("rate_per_worker", rate_per_worker, "rate must not be negative")
    if hours_worked < 0:
        raise InvalidAmount("hours_worked", hours_worked, "hours must not be negative")
    if not (0 <= shift_fraction <= 1):
        raise InvalidAmount("shift_fraction", shift_fraction, "shift fraction must be between 0 and 1")

    multiplier = rules.multiplier(shift)
    base = rules.base_hours

    if hours_worked <= base:
        return count * rate_per_worker * (hours_worked / base) * multiplier * shift_fraction

    regular = count * rate_per_worker * multiplier * shift_fraction
    overtime_hours = hours_worked - base
    overtime = count * (rate_per_worker / base) * overtime_hours * rules.overtime_rate * multiplier
    return regular + overtime
