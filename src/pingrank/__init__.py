"""
Pingrank v1.0 - Table Tennis Rating Engine

Tracks player ratings across a sequence of table tennis tournaments and
re-derives the complete rating history whenever historical data changes.

Main components:
- rating: Match classification, Elo calculation, tournament replay and
  chronological recalculation
- tasks: Locks that keep recalculation passes exclusive
- services: Tournament events that invalidate rating history
- db: SQLAlchemy models and session management
"""

__version__ = "1.0.0"
