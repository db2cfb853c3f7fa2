"""Team task scheduling core.

Turns work-hour rules, calendar events and tasks into concrete time-boxed
assignments: slot generation, greedy packing, scoring and a simulated
annealing pass. Storage and transport are left to the caller.
"""

from .exceptions import InvalidConfigurationError, SchedulerError, SchedulingRunError
from .greedy import GreedyPacker, PackerConfig, PackingResult, pack_tasks
from .local_search import (
    LocalSearchConfig,
    LocalSearchOptimizer,
    OptimizationResult,
    optimize_assignments,
)
from .meetings import MeetingSuggestion, suggest_meeting_times
from .models import (
    Assignment,
    AssignmentMeta,
    AssignmentSource,
    CalendarEvent,
    RecurrenceKind,
    Schedule,
    SchedulingInput,
    Task,
    TimeSlot,
    UnassignedReason,
    UnassignedTask,
    WorkHourRule,
)
from .pipeline import (
    ProgressStatus,
    ScheduleProgressMessage,
    SchedulingPipeline,
    SchedulingResult,
)
from .scoring import ScoreBreakdown, ScoreCalculator, ScoringConfig, calculate_score
from .slots import SlotGenerator, SlotGeneratorConfig, generate_available_slots

__all__ = [
    "Assignment",
    "AssignmentMeta",
    "AssignmentSource",
    "CalendarEvent",
    "calculate_score",
    "generate_available_slots",
    "GreedyPacker",
    "InvalidConfigurationError",
    "LocalSearchConfig",
    "LocalSearchOptimizer",
    "MeetingSuggestion",
    "optimize_assignments",
    "OptimizationResult",
    "pack_tasks",
    "PackerConfig",
    "PackingResult",
    "ProgressStatus",
    "RecurrenceKind",
    "Schedule",
    "ScheduleProgressMessage",
    "SchedulerError",
    "SchedulingInput",
    "SchedulingPipeline",
    "SchedulingResult",
    "SchedulingRunError",
    "ScoreBreakdown",
    "ScoreCalculator",
    "ScoringConfig",
    "SlotGenerator",
    "SlotGeneratorConfig",
    "suggest_meeting_times",
    "Task",
    "TimeSlot",
    "UnassignedReason",
    "UnassignedTask",
    "WorkHourRule",
]
