# Cafeteria Analytics: Database Models
# Import all models here for SQLAlchemy discovery

from cafeteria_analytics.models.tenant import Tenant                        # noqa
from cafeteria_analytics.models.cafeteria_location import CafeteriaLocation  # noqa
from cafeteria_analytics.models.food_counter import FoodCounter             # noqa
from cafeteria_analytics.models.telemetry_record import TelemetryRecord     # noqa
from cafeteria_analytics.models.queue_snapshot import QueueSnapshot         # noqa
