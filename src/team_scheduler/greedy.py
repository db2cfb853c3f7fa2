"""Greedy task packing.

Tasks are visited most-urgent first and each one takes the first slots that
fit it, so the result is a fast, feasible starting point for local search
rather than an optimum.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .models import (
    SCHEDULE_TZ,
    Assignment,
    AssignmentMeta,
    AssignmentSource,
    Schedule,
    Task,
    TimeSlot,
    UnassignedReason,
    UnassignedTask,
)

logger = logging.getLogger(__name__)

_FAR_FUTURE = datetime.max.replace(tzinfo=SCHEDULE_TZ)


@dataclass(frozen=True)
class PackerConfig:
    # Slots at or below this preference (night hours) are never used.
    unusable_preference: float = 0.05
    # Deadlines closer than this ignore preference and pack chronologically.
    urgent_window: timedelta = timedelta(hours=24)


@dataclass
class PackingResult:
    assignments: list[Assignment] = field(default_factory=list)
    unassigned: list[UnassignedTask] = field(default_factory=list)

    @property
    def assigned_task_ids(self) -> set[int]:
        return {a.task_id for a in self.assignments if a.task_id is not None}


def task_order_key(task: Task) -> tuple:
    """Deadline-bearing first, earliest deadline, longest, then priority value."""
    return (
        task.deadline is None,
        task.deadline or _FAR_FUTURE,
        -task.duration_minutes,
        -task.priority,
    )


def group_contiguous(slots: Sequence[TimeSlot]) -> list[list[TimeSlot]]:
    """Split chronologically sorted slots into maximal back-to-back runs."""
    groups: list[list[TimeSlot]] = []
    for slot in slots:
        if groups and groups[-1][-1].end == slot.start and groups[-1][-1].is_consecutive(slot):
            groups[-1].append(slot)
        else:
            groups.append([slot])
    return groups


class GreedyPacker:
    def __init__(self, config: PackerConfig | None = None):
        self.config = config or PackerConfig()

    def pack(
        self,
        tasks: Sequence[Task],
        available_slots: Mapping[int, Sequence[TimeSlot]],
        schedule: Schedule,
        now: datetime | None = None,
    ) -> PackingResult:
        """Place ``tasks`` into ``available_slots``.

        Tasks that fit nowhere are reported in ``PackingResult.unassigned``
        with a reason instead of raising.
        """
        if now is None:
            now = datetime.now(SCHEDULE_TZ)

        logger.info(
            f"Greedy packing started: tasks={len(tasks)}, users={len(available_slots)}"
        )

        ordered_tasks = sorted(tasks, key=task_order_key)
        used: dict[int, set] = {}
        result = PackingResult()

        for task in ordered_tasks:
            placed = self._place_task(task, available_slots, used, schedule, now)
            if placed:
                result.assignments.extend(placed)
                logger.debug(
                    f"Task placed: task_id={task.id}, title={task.title}, "
                    f"fragments={len(placed)}"
                )
                continue

            reason = self._unassigned_reason(task, available_slots, now)
            result.unassigned.append(UnassignedTask(task.id, task.title, reason))
            logger.warning(
                f"Task could not be placed: task_id={task.id}, title={task.title}, "
                f"reason={reason.value}"
            )

        logger.info(
            f"Greedy packing completed: placed={len(ordered_tasks) - len(result.unassigned)}, "
            f"unassigned={len(result.unassigned)}, assignments={len(result.assignments)}"
        )
        return result

    def _candidate_users(
        self, task: Task, available_slots: Mapping[int, Sequence[TimeSlot]]
    ) -> list[int]:
        if task.assignee_id is not None:
            return [task.assignee_id]
        return [user_id for user_id, slots in available_slots.items() if slots]

    def _place_task(
        self,
        task: Task,
        available_slots: Mapping[int, Sequence[TimeSlot]],
        used: dict[int, set],
        schedule: Schedule,
        now: datetime,
    ) -> list[Assignment]:
        for user_id in self._candidate_users(task, available_slots):
            user_slots = available_slots.get(user_id)
            if not user_slots:
                continue

            used_keys = used.setdefault(user_id, set())
            chosen = self.find_slots(task, user_slots, used_keys, now)
            if chosen:
                used_keys.update(slot.key for slot in chosen)
                return self._build_assignments(task, chosen, schedule)
        return []

    def find_slots(
        self,
        task: Task,
        user_slots: Sequence[TimeSlot],
        used_keys: set,
        now: datetime,
    ) -> list[TimeSlot] | None:
        """Chronologically sorted slots for ``task`` from one user's calendar."""
        required = task.required_slots
        deadline = task.deadline

        free = [
            slot
            for slot in user_slots
            if slot.available
            and slot.key not in used_keys
            and slot.preference > self.config.unusable_preference
        ]
        if deadline is not None:
            if task.splittable:
                free = [s for s in free if s.start < deadline and s.end <= deadline]
            else:
                free = [s for s in free if s.end < deadline]

        if len(free) < required:
            return None

        ordered = self._order_slots(free, deadline, now)
        run = self._find_contiguous_run(ordered, free, required)
        if run is not None:
            return run
        if not task.splittable:
            return None

        return sorted(ordered[:required], key=lambda slot: slot.start)

    def _order_slots(
        self, free: list[TimeSlot], deadline: datetime | None, now: datetime
    ) -> list[TimeSlot]:
        chronological = sorted(free, key=lambda slot: slot.start)
        if deadline is None:
            return sorted(chronological, key=lambda slot: (slot.day, -slot.preference))
        if deadline - now <= self.config.urgent_window:
            return chronological
        return sorted(
            chronological, key=lambda slot: (slot.day, -slot.preference, slot.start)
        )

    @staticmethod
    def _find_contiguous_run(
        ordered: Sequence[TimeSlot], free: Sequence[TimeSlot], required: int
    ) -> list[TimeSlot] | None:
        by_start = {slot.start: slot for slot in free}
        for first in ordered:
            run = [first]
            while len(run) < required:
                following = by_start.get(run[-1].end)
                if following is None:
                    break
                run.append(following)
            if len(run) == required:
                return run
        return None

    def _build_assignments(
        self, task: Task, slots: Sequence[TimeSlot], schedule: Schedule
    ) -> list[Assignment]:
        groups = group_contiguous(slots)
        split = len(groups) > 1
        assignments = []
        for split_index, group in enumerate(groups):
            meta = AssignmentMeta(
                slots=len(group),
                split=split,
                user_id=group[0].user_id,
                split_index=split_index,
                total_groups=len(groups) if split else None,
            )
            assignment = Assignment(
                schedule_id=schedule.id,
                task_id=task.id,
                title=task.title,
                start=group[0].start,
                end=group[-1].end,
                source=AssignmentSource.TASK,
                slot_index=group[0].index,
                meta=meta,
            )
            assignments.append(ensure_ordered(assignment))
        return assignments

    def _unassigned_reason(
        self,
        task: Task,
        available_slots: Mapping[int, Sequence[TimeSlot]],
        now: datetime,
    ) -> UnassignedReason:
        if task.deadline is not None and task.deadline <= now:
            return UnassignedReason.DEADLINE_PASSED
        candidates = self._candidate_users(task, available_slots)
        if not any(available_slots.get(user_id) for user_id in candidates):
            return UnassignedReason.NO_AVAILABLE_SLOTS
        return UnassignedReason.INSUFFICIENT_TIME


def ensure_ordered(assignment: Assignment) -> Assignment:
    """Return ``assignment`` with start < end, swapping an inverted pair."""
    if assignment.start > assignment.end:
        logger.error(
            f"Inverted assignment for task {assignment.task_id}: "
            f"{assignment.start} > {assignment.end}; swapping"
        )
        return assignment.moved_to(assignment.end, assignment.start, assignment.slot_index)
    return assignment


def pack_tasks(
    tasks: Sequence[Task],
    available_slots: Mapping[int, Sequence[TimeSlot]],
    schedule: Schedule,
    *,
    now: datetime | None = None,
    config: PackerConfig | None = None,
) -> PackingResult:
    return GreedyPacker(config).pack(tasks, available_slots, schedule, now=now)
