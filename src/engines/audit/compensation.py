"""
Compensation Calculator - Audit fee when none is requested explicitly.

compensation = min(MAX_COMPENSATION,
                   round(rate × hours(category) × complexity(category)
                         × specialization_bonus × size_multiplier))
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Union

from pydantic import BaseModel

from src.engines.audit import policy


def round_half_up(value: Union[float, Decimal]) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CompensationBreakdown(BaseModel):
    """How a computed compensation was derived."""

    amount: int
    base_rate: int
    estimated_hours: int
    category_multiplier: float
    specialization_bonus: float
    size_multiplier: float
    capped: bool
    requested: bool = False


class CompensationCalculator:
    """Pure calculation of audit compensation."""

    @classmethod
    def breakdown(
        cls,
        category: str,
        specializations: Sequence[str],
        funding_goal: int,
        hourly_rate: Optional[int] = None,
        requested: Optional[int] = None,
    ) -> CompensationBreakdown:
        hours = policy.estimated_hours_for(category)
        base_rate = hourly_rate or policy.DEFAULT_HOURLY_RATE
        category_multiplier = policy.COMPLEXITY_MULTIPLIERS.get(category, 1.0)
        specialization_bonus = (
            policy.MULTI_SPECIALIZATION_BONUS if len(specializations) > 1 else 1.0
        )
        size_multiplier = (
            policy.LARGE_PROJECT_MULTIPLIER
            if funding_goal > policy.LARGE_PROJECT_GOAL
            else 1.0
        )

        if requested is not None:
            # Explicit values are used verbatim; the eligibility check owns the floor
            return CompensationBreakdown(
                amount=requested,
                base_rate=base_rate,
                estimated_hours=hours,
                category_multiplier=category_multiplier,
                specialization_bonus=specialization_bonus,
                size_multiplier=size_multiplier,
                capped=False,
                requested=True,
            )

        raw = (
            Decimal(base_rate)
            * Decimal(hours)
            * Decimal(str(category_multiplier))
            * Decimal(str(specialization_bonus))
            * Decimal(str(size_multiplier))
        )
        computed = round_half_up(raw)
        amount = min(policy.MAX_COMPENSATION, computed)

        return CompensationBreakdown(
            amount=amount,
            base_rate=base_rate,
            estimated_hours=hours,
            category_multiplier=category_multiplier,
            specialization_bonus=specialization_bonus,
            size_multiplier=size_multiplier,
            capped=computed > amount,
        )

    @classmethod
    def calculate(
        cls,
        category: str,
        specializations: Sequence[str],
        funding_goal: int,
        hourly_rate: Optional[int] = None,
        requested: Optional[int] = None,
    ) -> int:
        """Final compensation in minor currency units."""
        return cls.breakdown(
            category,
            specializations,
            funding_goal,
            hourly_rate=hourly_rate,
            requested=requested,
        ).amount
