"""
Models package for the RoutineBuzz backend.
Contains data models and type definitions.
"""
from routinebuzz.models.routine_types import (
    CalendarExportRequest,
    ConflictMarker,
    CourseSummary,
    ExamSchedule,
    ExportOptions,
    Meeting,
    MeetingKind,
    Notice,
    NoticeLevel,
    ScheduleValidation,
    Section,
    SharedRoutine,
    SharedRoutineLink,
    Weekday,
    EXPORT_TITLE_FIELDS,
)

__all__ = [
    "CalendarExportRequest",
    "ConflictMarker",
    "CourseSummary",
    "ExamSchedule",
    "ExportOptions",
    "Meeting",
    "MeetingKind",
    "Notice",
    "NoticeLevel",
    "ScheduleValidation",
    "Section",
    "SharedRoutine",
    "SharedRoutineLink",
    "Weekday",
    "EXPORT_TITLE_FIELDS",
]
