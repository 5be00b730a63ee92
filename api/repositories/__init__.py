"""Repository layer for database operations.

Repositories encapsulate all queries against the streak store and never
commit; the service layer owns transaction boundaries so a load, decide,
persist sequence runs as one unit.
"""

from repositories.activity_repository import ActivityRepository
from repositories.streak_repository import StreakRepository
from repositories.utils import log_slow_query

__all__ = [
    "ActivityRepository",
    "StreakRepository",
    "log_slow_query",
]
