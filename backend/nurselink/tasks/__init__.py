"""
Celery Task Modules

Background tasks for the matching engine:
- matching.py: one orchestrator run per mission-creation event
"""

from nurselink.tasks.matching import (
    run_matching,
    trigger_matching,
)

__all__ = [
    "run_matching",
    "trigger_matching",
]
