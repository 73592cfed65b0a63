"""
Pydantic schemas for slots, availability and generation reports.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SlotResponse(BaseModel):
    id: int
    event_id: int
    company_id: int
    time_range_id: Optional[int]
    offer_id: Optional[int]
    start_time: datetime
    end_time: datetime
    capacity: int
    is_active: bool

    model_config = {"from_attributes": True}


class SlotAvailability(SlotResponse):
    confirmed_count: int
    available: int


class SlotActiveUpdate(BaseModel):
    is_active: bool
    # Required to deactivate a slot that still holds confirmed bookings
    cancel_bookings: bool = False


class SlotActiveResult(BaseModel):
    slot: SlotResponse
    bookings_cancelled: int


class GenerationReport(BaseModel):
    event_id: int
    time_ranges_processed: int = 0
    companies_processed: int = 0
    slots_created: int = 0
    slots_unchanged: int = 0
    slots_updated: int = 0
    slots_removed: int = 0
    slots_deactivated: int = 0
    slots_preserved: int = 0

    def absorb(self, other: "GenerationReport") -> None:
        self.slots_created += other.slots_created
        self.slots_unchanged += other.slots_unchanged
        self.slots_updated += other.slots_updated
        self.slots_removed += other.slots_removed
        self.slots_deactivated += other.slots_deactivated
        self.slots_preserved += other.slots_preserved
