"""Vote intake, period clock and settlement."""

from placemini.engine.intake import cast_vote, validate_target
from placemini.engine.period_clock import (
    is_expired,
    is_same_day,
    open_period,
    remaining_text,
)
from placemini.engine.settlement import (
    SettlementEngine,
    SettlementResult,
    resolve_winners,
)

__all__ = [
    "cast_vote",
    "validate_target",
    "is_expired",
    "is_same_day",
    "open_period",
    "remaining_text",
    "SettlementEngine",
    "SettlementResult",
    "resolve_winners",
]
