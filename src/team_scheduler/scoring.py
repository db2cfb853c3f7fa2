"""Schedule quality scoring.

A schedule that breaks a hard constraint scores exactly 0. Otherwise the
score starts at ``ScoringConfig.base_score`` and soft constraints subtract
penalties or add bonuses; the result never drops below 0.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from .models import Assignment, Task, TimeSlot

logger = logging.getLogger(__name__)

HARD_CONSTRAINT_VIOLATION = 0


@dataclass(frozen=True)
class ScoringConfig:
    base_score: int = 1000
    deadline_penalty_weight: int = 50
    priority_penalty_weight: int = 30
    split_penalty_weight: int = 20
    continuity_bonus_weight: int = 10
    on_time_window_hours: int = 24
    early_grace_days: int = 7
    early_penalty_factor: float = 0.1
    late_penalty_multiplier: int = 10


@dataclass(frozen=True)
class ScoreBreakdown:
    hard_constraints_ok: bool
    base: int = 0
    deadline_penalty: int = 0
    priority_penalty: int = 0
    split_penalty: int = 0
    continuity_bonus: int = 0

    @property
    def total(self) -> int:
        if not self.hard_constraints_ok:
            return HARD_CONSTRAINT_VIOLATION
        score = (
            self.base
            - self.deadline_penalty
            - self.priority_penalty
            - self.split_penalty
            + self.continuity_bonus
        )
        return max(0, score)


def _whole_hours(delta: timedelta) -> int:
    # Truncates toward zero, so 90 minutes late is -1 and 30 minutes late is 0.
    return int(delta.total_seconds() / 3600)


class ScoreCalculator:
    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()

    def score(
        self,
        assignments: Sequence[Assignment],
        tasks: Sequence[Task],
        available_slots: Mapping[int, Sequence[TimeSlot]],
    ) -> int:
        return self.breakdown(assignments, tasks, available_slots).total

    def breakdown(
        self,
        assignments: Sequence[Assignment],
        tasks: Sequence[Task],
        available_slots: Mapping[int, Sequence[TimeSlot]],
    ) -> ScoreBreakdown:
        task_map = {task.id: task for task in tasks}
        if not self.check_hard_constraints(assignments, task_map, available_slots):
            logger.warning("Hard constraint violated; score is 0")
            return ScoreBreakdown(hard_constraints_ok=False)

        tracked = [a for a in assignments if a.is_task and a.task_id in task_map]
        return ScoreBreakdown(
            hard_constraints_ok=True,
            base=self.config.base_score,
            deadline_penalty=self.deadline_penalty(tracked, task_map),
            priority_penalty=self.priority_penalty(tracked, task_map),
            split_penalty=self.split_penalty(tracked),
            continuity_bonus=self.continuity_bonus(tracked),
        )

    def check_hard_constraints(
        self,
        assignments: Sequence[Assignment],
        task_map: Mapping[int, Task],
        available_slots: Mapping[int, Sequence[TimeSlot]],
    ) -> bool:
        """Deadlines are met and every range is backed by available slots."""
        slot_index = {
            user_id: {slot.start: slot for slot in slots if slot.available}
            for user_id, slots in available_slots.items()
        }

        for assignment in assignments:
            if not assignment.is_task:
                continue
            task = task_map.get(assignment.task_id)
            if task is None:
                continue

            if task.deadline is not None and assignment.end > task.deadline:
                logger.warning(f"Task {task.id} ends after its deadline")
                return False

            owner_id = assignment.owner_id
            if owner_id is None or owner_id not in slot_index:
                continue
            if not self._covered_by_slots(assignment, slot_index[owner_id]):
                logger.warning(f"Task {task.id} is placed outside available slots")
                return False

        return True

    @staticmethod
    def _covered_by_slots(
        assignment: Assignment, slots_by_start: Mapping[datetime, TimeSlot]
    ) -> bool:
        # The range must start exactly on a slot start and end exactly on
        # the end of a chain of consecutive available slots.
        cursor = assignment.start
        while cursor < assignment.end:
            slot = slots_by_start.get(cursor)
            if slot is None:
                return False
            cursor = slot.end
        return cursor == assignment.end

    def deadline_penalty(
        self, assignments: Sequence[Assignment], task_map: Mapping[int, Task]
    ) -> int:
        config = self.config
        total = 0
        for assignment in assignments:
            task = task_map[assignment.task_id]
            if task.deadline is None:
                continue

            hours_left = _whole_hours(task.deadline - assignment.end)
            if 0 <= hours_left < config.on_time_window_hours:
                continue
            if hours_left < 0:
                total += config.deadline_penalty_weight * config.late_penalty_multiplier
                continue

            # Finishing far ahead of the deadline is penalized as well.
            days_early = hours_left // 24
            if days_early > config.early_grace_days:
                total += int(
                    config.deadline_penalty_weight
                    * (days_early - config.early_grace_days)
                    * config.early_penalty_factor
                )
        return total

    def priority_penalty(
        self, assignments: Sequence[Assignment], task_map: Mapping[int, Task]
    ) -> int:
        earliest_by_priority: dict[int, datetime] = {}
        for assignment in assignments:
            priority = task_map[assignment.task_id].priority
            current = earliest_by_priority.get(priority)
            if current is None or assignment.start < current:
                earliest_by_priority[priority] = assignment.start

        total = 0
        for higher, higher_start in earliest_by_priority.items():
            for lower, lower_start in earliest_by_priority.items():
                # Lower number means higher priority.
                if higher >= lower or higher_start <= lower_start:
                    continue
                hours_gap = _whole_hours(higher_start - lower_start)
                total += int(self.config.priority_penalty_weight * hours_gap / 24.0)
        return total

    def split_penalty(self, assignments: Sequence[Assignment]) -> int:
        counts: dict[int, int] = defaultdict(int)
        for assignment in assignments:
            counts[assignment.task_id] += 1
        return sum(
            self.config.split_penalty_weight * (count - 1)
            for count in counts.values()
            if count > 1
        )

    def continuity_bonus(self, assignments: Sequence[Assignment]) -> int:
        by_task: dict[int, list[Assignment]] = defaultdict(list)
        for assignment in assignments:
            by_task[assignment.task_id].append(assignment)

        total = 0
        for fragments in by_task.values():
            if len(fragments) <= 1:
                continue
            fragments = sorted(fragments, key=lambda a: a.start)
            runs = 1
            for previous, current in zip(fragments, fragments[1:]):
                if previous.end != current.start:
                    runs += 1
            total += self.config.continuity_bonus_weight * (len(fragments) - runs)
        return total


def calculate_score(
    assignments: Sequence[Assignment],
    tasks: Sequence[Task],
    available_slots: Mapping[int, Sequence[TimeSlot]],
    *,
    config: ScoringConfig | None = None,
) -> int:
    return ScoreCalculator(config).score(assignments, tasks, available_slots)
