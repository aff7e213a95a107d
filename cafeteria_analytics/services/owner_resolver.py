# cafeteria_analytics/services/owner_resolver.py
"""
Owner resolution: which counter (if any) and which location an event belongs to.

Fallback chain, first match wins:
  1. counter ref (deviceId or topic mapping) → that counter and its location
  2. location ref (cafeteriaCode)            → site-level record
  3. configured default location code        → site-level record
  4. first active location                   → site-level record
  5. nothing                                 → NoResolvableOwner, event dropped
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from cafeteria_analytics.exceptions import NoResolvableOwner
from cafeteria_analytics.models.cafeteria_location import CafeteriaLocation
from cafeteria_analytics.models.food_counter import FoodCounter
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ResolvedOwner:
    location: CafeteriaLocation
    counter: Optional[FoodCounter] = None
    step: str = "counter"    # counter | location_ref | default | first_active

    @property
    def is_site_level(self) -> bool:
        return self.counter is None


class OwnerDirectory:
    """Read-only lookups of counters and locations."""

    def __init__(self, db: Session):
        self.db = db

    def find_counter_by_device_id(self, device_id: str) -> Optional[FoodCounter]:
        return self.db.query(FoodCounter).filter(FoodCounter.device_id == device_id).first()

    def find_location_by_code(self, code: str) -> Optional[CafeteriaLocation]:
        return self.db.query(CafeteriaLocation).filter(CafeteriaLocation.code == code).first()

    def first_active_location(self) -> Optional[CafeteriaLocation]:
        return (
            self.db.query(CafeteriaLocation)
            .filter(CafeteriaLocation.active.is_(True))
            .order_by(CafeteriaLocation.id)
            .first()
        )


class OwnerResolver:
    def __init__(self, directory: OwnerDirectory, default_location_code: Optional[str]):
        self.directory = directory
        self.default_location_code = default_location_code

    def resolve(self, counter_ref: Optional[str] = None,
                location_ref: Optional[str] = None) -> ResolvedOwner:
        if counter_ref:
            counter = self.directory.find_counter_by_device_id(counter_ref)
            if counter is not None:
                logger.debug(f"[RESOLVE] device={counter_ref} → counter '{counter.name}'")
                return ResolvedOwner(location=counter.location, counter=counter, step="counter")
            logger.warning(f"[RESOLVE] Unknown device '{counter_ref}', falling back to location")

        if location_ref:
            location = self.directory.find_location_by_code(location_ref)
            if location is not None:
                return ResolvedOwner(location=location, step="location_ref")
            logger.warning(f"[RESOLVE] Unknown cafeteria code '{location_ref}'")

        if self.default_location_code:
            location = self.directory.find_location_by_code(self.default_location_code)
            if location is not None:
                logger.info(f"[RESOLVE] Using default cafeteria '{location.code}'")
                return ResolvedOwner(location=location, step="default")
            logger.warning(f"[RESOLVE] Default cafeteria '{self.default_location_code}' not found")

        location = self.directory.first_active_location()
        if location is not None:
            logger.info(f"[RESOLVE] Using first active cafeteria '{location.code}'")
            return ResolvedOwner(location=location, step="first_active")

        raise NoResolvableOwner(
            f"No owner for device={counter_ref!r} cafeteria={location_ref!r}"
        )
