"""
CineLink Catalog Backend

Movie/series catalog with click analytics:
1. Read-through Redis cache with family-prefix invalidation
2. Click recording with an atomic denormalized counter plus an event log
3. Windowed aggregations over the event log
4. A daily rollup that prunes old events and summarizes the previous day
"""

__version__ = "1.0.0"
