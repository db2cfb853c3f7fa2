"""
Scheduling pipeline: slots -> greedy packing -> scoring -> local search.

The pipeline is what an orchestrating caller runs off its request thread.
Loading input and publishing progress are collaborator protocols so the
core stays free of storage and transport concerns.

Milestones published per run:
    20  input data collected
    30  generating time slots        40  time slots generated
    50  packing tasks                70  tasks packed
    80  calculating score            85  initial score
    90  optimizing                   95  optimization completed
    COMPLETED / FAILED
"""

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .exceptions import SchedulingRunError
from .greedy import GreedyPacker
from .local_search import LocalSearchOptimizer, OptimizationResult
from .models import (
    SCHEDULE_TZ,
    Assignment,
    Schedule,
    SchedulingInput,
    TimeSlot,
    UnassignedTask,
    WorkHourRule,
)
from .scoring import ScoreCalculator
from .slots import SlotGenerator

logger = logging.getLogger(__name__)


class PipelineStage(Enum):
    """Pipeline execution stages."""

    SLOT_GENERATION = "slot_generation"
    GREEDY_PACKING = "greedy_packing"
    SCORING = "scoring"
    OPTIMIZATION = "optimization"


class ProgressStatus(str, Enum):
    PROGRESS = "PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ScheduleProgressMessage(BaseModel):
    """Progress event keyed by team."""

    team_id: int = Field(..., description="Team whose schedule is being built")
    status: ProgressStatus = Field(..., description="Run status")
    progress: int | None = Field(None, ge=0, le=100, description="Percent complete")
    message: str = Field("", description="Human-readable progress message")

    @classmethod
    def in_progress(
        cls, team_id: int, progress: int, message: str
    ) -> "ScheduleProgressMessage":
        return cls(
            team_id=team_id,
            status=ProgressStatus.PROGRESS,
            progress=progress,
            message=message,
        )

    @classmethod
    def completed(cls, team_id: int) -> "ScheduleProgressMessage":
        return cls(
            team_id=team_id,
            status=ProgressStatus.COMPLETED,
            progress=100,
            message="Optimization completed",
        )

    @classmethod
    def failed(cls, team_id: int, message: str) -> "ScheduleProgressMessage":
        return cls(team_id=team_id, status=ProgressStatus.FAILED, message=message)


class ProgressPublisher(Protocol):
    def publish(self, message: ScheduleProgressMessage) -> None: ...


class SchedulingInputLoader(Protocol):
    def load(
        self, team_id: int, range_start: date, range_end: date
    ) -> SchedulingInput: ...


class LoggingProgressPublisher:
    """Publishes progress to the log; used when no publisher is wired in."""

    def publish(self, message: ScheduleProgressMessage) -> None:
        logger.info(
            f"Schedule progress: team={message.team_id}, status={message.status.value}, "
            f"progress={message.progress}, message={message.message}"
        )


class NullProgressPublisher:
    def publish(self, message: ScheduleProgressMessage) -> None:
        pass


@dataclass
class SchedulingResult:
    schedule: Schedule
    assignments: list[Assignment]
    unassigned: list[UnassignedTask]
    initial_score: int
    final_score: int
    available_slots: dict[int, list[TimeSlot]] = field(default_factory=dict)
    optimization: OptimizationResult | None = None
    stage_durations: dict[PipelineStage, float] = field(default_factory=dict)

    @property
    def improvement(self) -> int:
        return self.final_score - self.initial_score

    def assignment_records(self) -> list[dict[str, Any]]:
        """Assignments flattened for persistence, metadata as JSON text."""
        return [
            {
                "scheduleId": a.schedule_id,
                "taskId": a.task_id,
                "title": a.title,
                "startsAt": a.start.isoformat(),
                "endsAt": a.end.isoformat(),
                "source": a.source.value,
                "slotIndex": a.slot_index,
                "meta": a.meta.to_json() if a.meta is not None else None,
            }
            for a in self.assignments
        ]


class SchedulingPipeline:
    """Runs one full scheduling pass for a team."""

    def __init__(
        self,
        settings: Settings | None = None,
        publisher: ProgressPublisher | None = None,
        *,
        slot_generator: SlotGenerator | None = None,
        packer: GreedyPacker | None = None,
        score_calculator: ScoreCalculator | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings or get_settings()
        self.publisher = publisher or LoggingProgressPublisher()
        self.slot_generator = slot_generator or SlotGenerator()
        self.packer = packer or GreedyPacker()
        self.score_calculator = score_calculator or ScoreCalculator()
        self.rng = rng

    def generate(
        self,
        loader: SchedulingInputLoader,
        team_id: int,
        range_start: date,
        range_end: date,
        created_by: int | None = None,
        now: datetime | None = None,
    ) -> SchedulingResult:
        """Load input through ``loader`` and run the pipeline."""
        logger.info(f"Schedule generation started: team={team_id}, range={range_start} ~ {range_end}")
        self._publish_progress(team_id, 10, "Collecting input data...")
        try:
            scheduling_input = loader.load(team_id, range_start, range_end)
        except Exception as e:
            logger.error(f"Loading scheduling input failed: team={team_id}: {e}")
            self.publisher.publish(
                ScheduleProgressMessage.failed(team_id, f"Failed to load input: {e}")
            )
            raise SchedulingRunError(team_id, str(e)) from e
        return self.run(scheduling_input, created_by=created_by, now=now)

    def run(
        self,
        scheduling_input: SchedulingInput,
        created_by: int | None = None,
        now: datetime | None = None,
    ) -> SchedulingResult:
        team_id = scheduling_input.team_id
        try:
            result = self._execute(scheduling_input, created_by, now)
        except Exception as e:
            logger.error(f"Schedule generation failed: team={team_id}: {e}")
            self.publisher.publish(
                ScheduleProgressMessage.failed(
                    team_id, f"Error while generating schedule: {e}"
                )
            )
            raise SchedulingRunError(team_id, str(e)) from e

        self.publisher.publish(ScheduleProgressMessage.completed(team_id))
        logger.info(
            f"Schedule generation completed: team={team_id}, "
            f"assignments={len(result.assignments)}, "
            f"unassigned={len(result.unassigned)}, score={result.final_score}"
        )
        return result

    def _execute(
        self,
        scheduling_input: SchedulingInput,
        created_by: int | None,
        now: datetime | None,
    ) -> SchedulingResult:
        team_id = scheduling_input.team_id
        tasks = scheduling_input.tasks
        if now is None:
            now = datetime.now(SCHEDULE_TZ)
        durations: dict[PipelineStage, float] = {}

        self._publish_progress(team_id, 20, "Input data collected")

        # Stage 1: slot generation
        stage_start = time.time()
        self._publish_progress(team_id, 30, "Generating time slots...")
        available_slots = self.slot_generator.generate(
            self._work_hours_or_default(scheduling_input),
            scheduling_input.calendar_events,
            scheduling_input.range_start,
            scheduling_input.range_end,
            scheduling_input.member_ids,
        )
        durations[PipelineStage.SLOT_GENERATION] = time.time() - stage_start
        self._publish_progress(team_id, 40, "Time slots generated")

        # Stage 2: greedy packing
        stage_start = time.time()
        self._publish_progress(team_id, 50, "Packing tasks...")
        schedule = Schedule(
            team_id=team_id,
            range_start=scheduling_input.range_start,
            range_end=scheduling_input.range_end,
            created_by=created_by,
            created_at=now,
        )
        packing = self.packer.pack(tasks, available_slots, schedule, now=now)
        durations[PipelineStage.GREEDY_PACKING] = time.time() - stage_start
        self._publish_progress(team_id, 70, "Tasks packed")

        # Stage 3: scoring
        stage_start = time.time()
        self._publish_progress(team_id, 80, "Calculating score...")
        initial_score = self.score_calculator.score(
            packing.assignments, tasks, available_slots
        )
        schedule.score = initial_score
        durations[PipelineStage.SCORING] = time.time() - stage_start
        self._publish_progress(team_id, 85, f"Initial score: {initial_score}")

        # Stage 4: local search
        assignments = packing.assignments
        final_score = initial_score
        optimization = None
        if self.settings.enable_local_search:
            stage_start = time.time()
            self._publish_progress(team_id, 90, "Optimizing with local search...")
            optimizer = LocalSearchOptimizer(
                self.score_calculator,
                self.settings.local_search_config(),
                rng=self.rng or random.Random(self.settings.random_seed),
            )
            optimization = optimizer.run(
                schedule, assignments, tasks, available_slots
            )
            assignments = optimization.assignments
            final_score = self.score_calculator.score(
                assignments, tasks, available_slots
            )
            durations[PipelineStage.OPTIMIZATION] = time.time() - stage_start
            self._publish_progress(
                team_id,
                95,
                f"Optimization completed: {final_score} "
                f"(change: {final_score - initial_score:+d})",
            )

        schedule.score = final_score
        return SchedulingResult(
            schedule=schedule,
            assignments=assignments,
            unassigned=packing.unassigned,
            initial_score=initial_score,
            final_score=final_score,
            available_slots=available_slots,
            optimization=optimization,
            stage_durations=durations,
        )

    def _work_hours_or_default(
        self, scheduling_input: SchedulingInput
    ) -> list[WorkHourRule]:
        if scheduling_input.work_hours or not scheduling_input.member_ids:
            return list(scheduling_input.work_hours)

        settings = self.settings
        logger.warning(
            f"Team {scheduling_input.team_id} has no work hours; using the default "
            f"{settings.default_work_start_minute}-{settings.default_work_end_minute} window"
        )
        return default_work_hours(scheduling_input.team_id, settings)

    def _publish_progress(self, team_id: int, progress: int, message: str) -> None:
        self.publisher.publish(
            ScheduleProgressMessage.in_progress(team_id, progress, message)
        )


def default_work_hours(team_id: int, settings: Settings) -> list[WorkHourRule]:
    """Team-wide rules covering the configured default window."""
    return [
        WorkHourRule(
            team_id=team_id,
            day_of_week=day,
            start_minute=settings.default_work_start_minute,
            end_minute=settings.default_work_end_minute,
        )
        for day in settings.default_work_days
    ]
