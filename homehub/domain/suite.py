from __future__ import annotations

import logging
from typing import Optional

from .analyzer import HistoryAnalyzer
from .vacation import VacationLighting

logger = logging.getLogger(__name__)


class VacationSuite:
    """Parent for any number of lighting schedules plus an optional analyzer."""

    def __init__(self, label: str = "Vacation Lighting Simulator Suite") -> None:
        self.label = label
        self._schedules: dict[str, VacationLighting] = {}
        self.analyzer: Optional[HistoryAnalyzer] = None

    def add_schedule(self, schedule: VacationLighting) -> None:
        app_id = schedule.config.app_id
        if app_id in self._schedules:
            raise ValueError(f"Duplicate schedule id: {app_id}")
        self._schedules[app_id] = schedule
        logger.info("Suite: added schedule %s", schedule.config.label)

    def set_analyzer(self, analyzer: HistoryAnalyzer) -> None:
        if self.analyzer is not None:
            raise ValueError("Suite already has an analyzer")
        self.analyzer = analyzer

    def schedule(self, app_id: str) -> Optional[VacationLighting]:
        return self._schedules.get(app_id)

    def schedules(self) -> list[VacationLighting]:
        return list(self._schedules.values())

    async def remove_schedule(self, app_id: str) -> None:
        schedule = self._schedules.pop(app_id, None)
        if schedule is None:
            raise KeyError(app_id)
        await schedule.stop()

    def summary(self) -> str:
        lines = [f"Lighting schedules: {len(self._schedules)}"]
        lines += [f"  • {s.config.label}" for s in self._schedules.values()]
        analyzers = [self.analyzer] if self.analyzer is not None else []
        lines.append(f"Analyzer children: {len(analyzers)}")
        lines += [f"  • {a.config.label}" for a in analyzers]
        if not self._schedules and not analyzers:
            lines.append("No children yet. Add a schedule to get started.")
        return "\n".join(lines)
