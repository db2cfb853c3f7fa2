"""Simulated-annealing local search over a packed schedule.

Each iteration perturbs the current assignment list with a swap (two task
assignments exchange time ranges) or a move (one task assignment jumps to a
random run of its owner's slots). Perturbations are first checked for
double booking and only then scored; hard constraints are left to the
score calculator. On top of the double-booking check, a swap is rejected
when the two ranges differ in length, so no task ever changes duration.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from .models import SLOT_DURATION, Assignment, Schedule, Task, TimeSlot
from .scoring import ScoreCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalSearchConfig:
    max_iterations: int = 100
    max_no_improvement: int = 20
    initial_temperature: float = 100.0
    cooling_rate: float = 0.95
    swap_probability: float = 0.5


@dataclass
class OptimizationResult:
    assignments: list[Assignment]
    initial_score: int
    best_score: int
    iterations: int = 0
    accepted: int = 0
    rejected_perturbations: int = 0
    improved: bool = False
    score_history: list[int] = field(default_factory=list)


def _conflicts(first: Assignment, second: Assignment) -> bool:
    # Only one person's calendar can be double booked.
    if first.owner_id is not None and second.owner_id is not None:
        if first.owner_id != second.owner_id:
            return False
    return first.overlaps(second)


class LocalSearchOptimizer:
    """Improves a schedule with swap/move perturbations.

    Pass ``rng`` or ``seed`` for reproducible runs; nothing is shared
    between optimizer instances.
    """

    def __init__(
        self,
        score_calculator: ScoreCalculator | None = None,
        config: LocalSearchConfig | None = None,
        *,
        rng: random.Random | None = None,
        seed: int | None = None,
    ):
        self.score_calculator = score_calculator or ScoreCalculator()
        self.config = config or LocalSearchConfig()
        self.rng = rng if rng is not None else random.Random(seed)

    def optimize(
        self,
        schedule: Schedule,
        assignments: Sequence[Assignment],
        tasks: Sequence[Task],
        available_slots: Mapping[int, Sequence[TimeSlot]],
    ) -> list[Assignment]:
        return self.run(schedule, assignments, tasks, available_slots).assignments

    def run(
        self,
        schedule: Schedule,
        assignments: Sequence[Assignment],
        tasks: Sequence[Task],
        available_slots: Mapping[int, Sequence[TimeSlot]],
    ) -> OptimizationResult:
        config = self.config
        original = list(assignments)
        slots_by_start = {
            user_id: {slot.start: slot for slot in slots if slot.available}
            for user_id, slots in available_slots.items()
        }

        initial_score = self.score_calculator.score(original, tasks, available_slots)
        logger.info(
            f"Local search started: assignments={len(original)}, "
            f"initial_score={initial_score}"
        )

        current, current_score = original, initial_score
        best, best_score = original, initial_score
        temperature = config.initial_temperature
        no_improvement = 0
        result = OptimizationResult(
            assignments=original, initial_score=initial_score, best_score=initial_score
        )

        for iteration in range(config.max_iterations):
            result.iterations = iteration + 1
            if self.rng.random() < config.swap_probability:
                candidate = self._try_swap(current)
            else:
                candidate = self._try_move(current, available_slots, slots_by_start)

            improved = False
            if candidate is None:
                result.rejected_perturbations += 1
            else:
                candidate_score = self.score_calculator.score(
                    candidate, tasks, available_slots
                )
                if self._accept(candidate_score, current_score, temperature):
                    improved = candidate_score > current_score
                    current, current_score = candidate, candidate_score
                    result.accepted += 1
                    if current_score > best_score:
                        best, best_score = current, current_score
                        logger.debug(
                            f"New best schedule: iteration={iteration}, score={best_score}"
                        )
            result.score_history.append(current_score)

            temperature *= config.cooling_rate
            no_improvement = 0 if improved else no_improvement + 1
            if no_improvement >= config.max_no_improvement:
                logger.info(f"Local search stopped early: iteration={iteration}")
                break

        logger.info(
            f"Local search completed: best_score={best_score} (initial: {initial_score})"
        )

        result.best_score = best_score
        if best_score > initial_score:
            result.improved = True
            result.assignments = [
                a if a.schedule_id == schedule.id else replace(a, schedule_id=schedule.id)
                for a in best
            ]
        else:
            result.assignments = original
        return result

    def _accept(self, candidate_score: int, current_score: int, temperature: float) -> bool:
        if candidate_score > current_score:
            return True
        probability = math.exp((candidate_score - current_score) / temperature)
        return self.rng.random() < probability

    def _try_swap(self, assignments: list[Assignment]) -> list[Assignment] | None:
        positions = [i for i, a in enumerate(assignments) if a.is_task]
        if len(positions) < 2:
            return None

        i, j = self.rng.sample(positions, 2)
        first, second = assignments[i], assignments[j]
        # Exchanging ranges of different lengths would change task durations.
        if first.duration != second.duration:
            return None

        new_first = first.moved_to(second.start, second.end, second.slot_index)
        new_second = second.moved_to(first.start, first.end, first.slot_index)
        for k, other in enumerate(assignments):
            if k in (i, j):
                continue
            if _conflicts(other, new_first) or _conflicts(other, new_second):
                return None

        candidate = list(assignments)
        candidate[i] = new_first
        candidate[j] = new_second
        return candidate

    def _try_move(
        self,
        assignments: list[Assignment],
        available_slots: Mapping[int, Sequence[TimeSlot]],
        slots_by_start: Mapping[int, Mapping[datetime, TimeSlot]],
    ) -> list[Assignment] | None:
        positions = [i for i, a in enumerate(assignments) if a.is_task]
        if not positions:
            return None

        i = self.rng.choice(positions)
        selected = assignments[i]
        owner_id = selected.owner_id
        user_slots = available_slots.get(owner_id) if owner_id is not None else None
        if not user_slots:
            return None

        start_slot = self.rng.choice(user_slots)
        required = max(1, math.ceil(selected.duration / SLOT_DURATION))
        run = [start_slot]
        while len(run) < required:
            following = slots_by_start[owner_id].get(run[-1].end)
            if following is None:
                return None
            run.append(following)

        moved = selected.moved_to(run[0].start, run[-1].end, run[0].index)
        for k, other in enumerate(assignments):
            if k != i and _conflicts(other, moved):
                return None

        candidate = list(assignments)
        candidate[i] = moved
        return candidate


def optimize_assignments(
    schedule: Schedule,
    assignments: Sequence[Assignment],
    tasks: Sequence[Task],
    available_slots: Mapping[int, Sequence[TimeSlot]],
    *,
    seed: int | None = None,
    config: LocalSearchConfig | None = None,
    score_calculator: ScoreCalculator | None = None,
) -> list[Assignment]:
    optimizer = LocalSearchOptimizer(score_calculator, config, seed=seed)
    return optimizer.optimize(schedule, assignments, tasks, available_slots)
