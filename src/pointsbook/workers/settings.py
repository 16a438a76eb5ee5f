"""arq worker settings module.

Import path for arq CLI: arq pointsbook.workers.settings.WorkerSettings
"""

from __future__ import annotations

from pointsbook.workers.rounds_worker import WorkerSettings

__all__ = ["WorkerSettings"]
