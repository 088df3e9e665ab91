"""
Type definitions for the routine builder.
Provides strict typing for sections, meetings, shared routines and conflict markers.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class Weekday(str, Enum):
    """Days of the week as reported by the USIS catalog."""
    SUNDAY = "SUNDAY"
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"

    @classmethod
    def parse(cls, raw: str) -> "Weekday":
        """Parse a day name case-insensitively (e.g. 'Monday', 'MONDAY')."""
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown weekday: {raw!r}") from None


class MeetingKind(str, Enum):
    """Kind of weekly commitment a conflict marker refers to."""
    CLASS = "class"
    LAB = "lab"


@dataclass(frozen=True)
class Meeting:
    """A recurring weekly meeting. Times are kept exactly as received (e.g. '09:30:00')."""
    day: Weekday
    start_time: str
    end_time: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "day": self.day.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Meeting":
        return cls(
            day=Weekday.parse(data.get("day", "")),
            start_time=str(data.get("startTime") or ""),
            end_time=str(data.get("endTime") or ""),
        )


@dataclass(frozen=True)
class ExamSchedule:
    """A single mid or final exam sitting."""
    date: str
    start_time: str
    end_time: str
    detail: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "detail": self.detail,
        }


def _parse_meetings(raw: Optional[Sequence[Dict[str, Any]]]) -> List[Meeting]:
    return [Meeting.from_api(item) for item in (raw or [])]


def _parse_exam(schedule: Dict[str, Any], prefix: str) -> Optional[ExamSchedule]:
    date = schedule.get(f"{prefix}ExamDate")
    if not date:
        return None
    return ExamSchedule(
        date=str(date),
        start_time=str(schedule.get(f"{prefix}ExamStartTime") or ""),
        end_time=str(schedule.get(f"{prefix}ExamEndTime") or ""),
        detail=str(schedule.get(f"{prefix}ExamDetail") or ""),
    )


@dataclass
class Section:
    """
    One enrollable offering of a course (e.g. CSE321 section 16).
    This is the unit a user adds to or removes from a routine.
    """
    section_id: int                  # Unique ID within the catalog
    course_code: str                 # e.g. "CSE321"
    section_name: str                # e.g. "16"
    course_credit: float
    capacity: int
    consumed_seat: int
    class_schedules: List[Meeting] = field(default_factory=list)
    lab_schedules: List[Meeting] = field(default_factory=list)
    mid_exam: Optional[ExamSchedule] = None
    final_exam: Optional[ExamSchedule] = None
    course_id: Optional[int] = None
    course_name: str = ""
    section_type: str = ""
    faculties: str = ""
    room_name: str = ""
    room_number: str = ""
    academic_degree: str = ""
    class_start_date: str = ""
    class_end_date: str = ""
    lab_section_id: Optional[int] = None
    lab_course_code: str = ""
    lab_faculties: str = ""
    lab_name: str = ""
    lab_room_name: str = ""
    prerequisite_courses: str = ""

    @property
    def available_seats(self) -> int:
        return self.capacity - self.consumed_seat

    def to_dict(self) -> Dict[str, Any]:
        schedule: Dict[str, Any] = {
            "classStartDate": self.class_start_date,
            "classEndDate": self.class_end_date,
            "classSchedules": [m.to_dict() for m in self.class_schedules],
        }
        for prefix, exam in (("mid", self.mid_exam), ("final", self.final_exam)):
            schedule[f"{prefix}ExamDate"] = exam.date if exam else ""
            schedule[f"{prefix}ExamStartTime"] = exam.start_time if exam else ""
            schedule[f"{prefix}ExamEndTime"] = exam.end_time if exam else ""
            schedule[f"{prefix}ExamDetail"] = exam.detail if exam else ""

        data: Dict[str, Any] = {
            "sectionId": self.section_id,
            "courseId": self.course_id,
            "courseCode": self.course_code,
            "courseName": self.course_name,
            "sectionName": self.section_name,
            "sectionType": self.section_type,
            "courseCredit": self.course_credit,
            "capacity": self.capacity,
            "consumedSeat": self.consumed_seat,
            "faculties": self.faculties,
            "roomName": self.room_name,
            "roomNumber": self.room_number,
            "academicDegree": self.academic_degree,
            "prerequisiteCourses": self.prerequisite_courses,
            "sectionSchedule": schedule,
        }
        if self.lab_schedules:
            data.update({
                "labSchedules": [m.to_dict() for m in self.lab_schedules],
                "labSectionId": self.lab_section_id,
                "labCourseCode": self.lab_course_code,
                "labFaculties": self.lab_faculties,
                "labName": self.lab_name,
                "labRoomName": self.lab_room_name,
            })
        return data

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Section":
        """Build a Section from a USIS catalog record (camelCase JSON)."""
        schedule = data.get("sectionSchedule") or {}
        return cls(
            section_id=int(data["sectionId"]),
            course_id=data.get("courseId"),
            course_code=str(data.get("courseCode") or ""),
            course_name=str(data.get("courseName") or ""),
            section_name=str(data.get("sectionName") or ""),
            section_type=str(data.get("sectionType") or ""),
            course_credit=float(data.get("courseCredit") or 0),
            capacity=int(data.get("capacity") or 0),
            consumed_seat=int(data.get("consumedSeat") or 0),
            faculties=str(data.get("faculties") or ""),
            room_name=str(data.get("roomName") or ""),
            room_number=str(data.get("roomNumber") or ""),
            academic_degree=str(data.get("academicDegree") or ""),
            prerequisite_courses=str(data.get("prerequisiteCourses") or ""),
            class_start_date=str(schedule.get("classStartDate") or ""),
            class_end_date=str(schedule.get("classEndDate") or ""),
            class_schedules=_parse_meetings(schedule.get("classSchedules")),
            lab_schedules=_parse_meetings(data.get("labSchedules")),
            mid_exam=_parse_exam(schedule, "mid"),
            final_exam=_parse_exam(schedule, "final"),
            lab_section_id=data.get("labSectionId"),
            lab_course_code=str(data.get("labCourseCode") or ""),
            lab_faculties=str(data.get("labFaculties") or ""),
            lab_name=str(data.get("labName") or ""),
            lab_room_name=str(data.get("labRoomName") or ""),
        )


@dataclass(frozen=True)
class CourseSummary:
    """A course as listed in the catalog picker (one row per course code)."""
    course_code: str
    course_name: str
    course_credit: float
    academic_degree: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "courseCode": self.course_code,
            "courseName": self.course_name,
            "courseCredit": self.course_credit,
            "academicDegree": self.academic_degree,
        }


@dataclass(frozen=True)
class SharedRoutineLink:
    """The association between a local routine and a published short code."""
    short_code: str
    is_creator: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"shortCode": self.short_code, "isCreator": self.is_creator}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SharedRoutineLink":
        short_code = data.get("shortCode")
        if not isinstance(short_code, str) or not short_code:
            raise ValueError("shared routine link is missing a short code")
        return cls(short_code=short_code, is_creator=data.get("isCreator") is True)


@dataclass(frozen=True, order=True)
class ConflictMarker:
    """A section's meeting at a given day/slot that collides with another selected section."""
    section_id: int
    kind: MeetingKind
    day: Weekday
    slot: str  # Normalized "HH:MM"

    @property
    def key(self) -> str:
        """Legacy string form, e.g. '12-MONDAY-09:30' or '12-lab-MONDAY-11:00'."""
        if self.kind == MeetingKind.LAB:
            return f"{self.section_id}-lab-{self.day.value}-{self.slot}"
        return f"{self.section_id}-{self.day.value}-{self.slot}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sectionId": self.section_id,
            "kind": self.kind.value,
            "day": self.day.value,
            "slot": self.slot,
            "key": self.key,
        }


@dataclass
class ScheduleValidation:
    """Result of routine validation."""
    valid: bool
    conflicts: List[ConflictMarker]
    conflicting_section_ids: List[int]
    total_credits: float
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "conflictingSectionIds": self.conflicting_section_ids,
            "totalCredits": self.total_credits,
            "warnings": self.warnings,
        }


@dataclass
class SharedRoutine:
    """A published routine snapshot as stored remotely."""
    routine_id: str
    short_code: str
    section_ids: List[int]
    sections: List[Section] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    access_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routineId": self.routine_id,
            "shortCode": self.short_code,
            "sectionIds": self.section_ids,
            "sections": [s.to_dict() for s in self.sections],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "accessCount": self.access_count,
        }

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "SharedRoutine":
        """Create a SharedRoutine from a shared_routines row (sections resolved separately)."""
        return cls(
            routine_id=str(row.get("id", "")),
            short_code=row.get("short_code", ""),
            section_ids=[int(i) for i in (row.get("section_ids") or [])],
            created_at=row.get("created_at", "") or "",
            updated_at=row.get("updated_at", "") or "",
            access_count=int(row.get("access_count") or 0),
        )

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "SharedRoutine":
        """Parse the JSON returned by GET /routine/get."""
        return cls(
            routine_id=str(data.get("routineId", "")),
            short_code=data.get("shortCode", ""),
            section_ids=[int(i) for i in (data.get("sectionIds") or [])],
            sections=[Section.from_api(s) for s in (data.get("sections") or [])],
            created_at=data.get("createdAt", "") or "",
            updated_at=data.get("updatedAt", "") or "",
            access_count=int(data.get("accessCount") or 0),
        )


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "primary"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class Notice:
    """A non-blocking, user-visible message produced by the sync layer."""
    level: NoticeLevel
    title: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"level": self.level.value, "title": self.title, "message": self.message}


# Title tokens accepted by the calendar export collaborator
EXPORT_TITLE_FIELDS = ("code", "name", "section", "type")


@dataclass
class ExportOptions:
    """Flat options record consumed by the calendar export."""
    title_fields: List[str] = field(default_factory=lambda: ["code", "name", "section"])
    title_separator: str = " - "
    include_labs: bool = True
    include_exams: bool = True
    include_faculty: bool = True
    include_room: bool = True
    include_prerequisites: bool = False
    reminder_minutes: int = 15

    def __post_init__(self) -> None:
        unknown = [f for f in self.title_fields if f not in EXPORT_TITLE_FIELDS]
        if unknown:
            raise ValueError(f"Unknown title fields: {', '.join(unknown)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "titleFields": list(self.title_fields),
            "titleSeparator": self.title_separator,
            "includeLabs": self.include_labs,
            "includeExams": self.include_exams,
            "includeFaculty": self.include_faculty,
            "includeRoom": self.include_room,
            "includePrerequisites": self.include_prerequisites,
            "reminderMinutes": self.reminder_minutes,
        }


@dataclass
class CalendarExportRequest:
    """Input handed to the calendar export: ordered sections plus options."""
    sections: List[Section]
    options: ExportOptions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sections": [s.to_dict() for s in self.sections],
            "options": self.options.to_dict(),
        }
