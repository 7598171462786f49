"""
Database Package
================

Exports key database components.
"""

from learnforge.db.models import (
    # Base
    Base,
    # Roadmap tables (external, read-mostly)
    Roadmap, RoadmapStep,
    # Enforcement tables
    LearnerIdentity, SkipRecord, MissionAttempt,
    WeakSpot, StudyDebt, EnforcementAction,
    # Time helpers
    utc_now, ensure_utc,
)
from learnforge.db.connection import Database, init_db, sqlite_url, transaction
