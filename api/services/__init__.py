"""Service layer for streak business logic.

Layer hierarchy:
    Routes (HTTP) -> StreakService (transactions, validation)
        -> streak_engine (pure decisions) + Repositories (Database)

Services own transaction boundaries and validation; the engine owns the
streak rules; repositories only run queries.
"""
