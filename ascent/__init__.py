"""
Ascent — Progression & Rewards Engine for a Personal-Finance Dashboard
=======================================================================
Tracks each user's level, experience, achievements, streak, and the
lifecycle of time-boxed challenges and multi-step quests.  The server-side
engine is the single writer of truth; the client-side reducer mirrors its
rules so the dashboard can show an action's effect immediately.

Package layout::

    ascent/
    ├── config.py          # YAML → typed Python config (+ reward catalog)
    ├── constants.py       # Default catalog tables & synthetic achievement ids
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # user_progress document table
    ├── engine/
    │   ├── catalog.py     # Reward catalog: levels, multipliers, cadence
    │   ├── achievements.py # Achievement + tagged-union rewards
    │   ├── progress.py    # Challenge, Quest, UserProgress documents
    │   ├── streaks.py     # Calendar-day streak arithmetic
    │   ├── events.py      # ProgressionEvent + append-only EventLog
    │   └── reducer.py     # Optimistic client reducer + reconciliation
    ├── services/
    │   ├── progress_store.py       # Store protocol, SQL + in-memory stores
    │   └── progression_service.py  # Authoritative ProgressionEngine
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT identity + engine wiring
        └── routes/        # /api/progress endpoints
"""

__version__ = "0.1.0"
