"""
Validation Policy

The thresholds that separate normal, warning, over-budget and
implausible readings. Kept as one object so the trust boundary between
computed and externally-reported numbers is stated in one place.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.config import ReconciliationSettings, get_settings


class ValidationPolicy(BaseModel):
    """
    Reconciliation thresholds.

    All comparisons are done in integer arithmetic:
    spent * 100 >= approved * warning_threshold_pct, never via floats.
    """
    model_config = ConfigDict(frozen=True)

    warning_threshold_pct: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Share of approved at which status becomes warning"
    )
    warning_inclusive: bool = Field(
        default=True,
        description="Spend exactly at the threshold counts as warning"
    )
    implausible_multiplier: int = Field(
        default=2,
        ge=1,
        description="Spend above approved * multiplier is a corrupt reading"
    )

    @classmethod
    def from_settings(cls, settings: Optional[ReconciliationSettings] = None) -> "ValidationPolicy":
        settings = settings or get_settings().reconciliation
        return cls(
            warning_threshold_pct=settings.warning_threshold_pct,
            warning_inclusive=settings.warning_inclusive,
            implausible_multiplier=settings.implausible_multiplier,
        )

    def max_allowed(self, approved_amount: int, variance_pct: int) -> int:
        """approved + approved * variance / 100, floored."""
        return approved_amount + approved_amount * variance_pct // 100

    def is_warning(self, actual_spent: int, approved_amount: int) -> bool:
        if approved_amount == 0:
            return False
        scaled_spent = actual_spent * 100
        threshold = approved_amount * self.warning_threshold_pct
        if self.warning_inclusive:
            return scaled_spent >= threshold
        return scaled_spent > threshold

    def is_implausible(self, actual_spent: int, approved_amount: int) -> bool:
        # Nothing approved is handled by the non-negativity clamp, not flagged
        if approved_amount == 0:
            return False
        return actual_spent > approved_amount * self.implausible_multiplier
