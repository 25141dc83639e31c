"""Locking utilities that keep recalculation passes exclusive."""

from pingrank.tasks.locks import (
    advisory_lock_key,
    exclusive_recalculation,
    postgres_advisory_lock,
    process_lock,
)

__all__ = [
    "advisory_lock_key",
    "exclusive_recalculation",
    "postgres_advisory_lock",
    "process_lock",
]
