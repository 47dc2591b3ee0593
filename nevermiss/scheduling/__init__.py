from nevermiss.scheduling.overlap import TimeRange, has_conflict, is_valid_interval, overlaps
from nevermiss.scheduling.slots import (
    BookingPageConfig,
    compute_eligible_dates,
    generate_slots,
    is_date_eligible,
    is_offered_slot,
    validate_config,
)

__all__ = [
    "TimeRange",
    "has_conflict",
    "is_valid_interval",
    "overlaps",
    "BookingPageConfig",
    "compute_eligible_dates",
    "generate_slots",
    "is_date_eligible",
    "is_offered_slot",
    "validate_config",
]
