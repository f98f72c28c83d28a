from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

DAY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

HabitCategory = Literal["Spiritual", "Physical", "Intellectual"]
HABIT_CATEGORIES: List[str] = ["Spiritual", "Physical", "Intellectual"]

DEFAULT_MVG_DESCRIPTION = "Define your minimum viable goal"
DEFAULT_PROJECT_COLOR = "bg-purple-600"


class MessageResponse(BaseModel):
    message: str


# Auth
class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)
    name: Optional[str] = Field(default=None, max_length=255)

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

class UserOut(BaseModel):
    id: str
    email: str
    name: Optional[str] = None

class UserEnvelope(BaseModel):
    user: UserOut


# Completion records
class CompletionRecordIn(BaseModel):
    date: str = Field(..., pattern=DAY_PATTERN)
    completed: bool
    notes: Optional[str] = Field(default=None, max_length=2000)


def dump_completion_records(records: List[CompletionRecordIn]) -> List[dict]:
    return [record.model_dump(exclude_none=True) for record in records]


# Habits
class HabitCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: HabitCategory
    identity: Optional[str] = None
    clearFramework: Optional[str] = None

class HabitUpdate(HabitCreate):
    completed: bool = False
    completionHistory: List[CompletionRecordIn] = Field(default_factory=list)

class HabitResponse(BaseModel):
    id: str
    name: str
    category: str
    identity: Optional[str] = None
    clearFramework: Optional[str] = None
    completed: bool
    streak: int = Field(..., ge=0)
    completionHistory: List[Dict[str, Any]]
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

class ResetDailyResponse(BaseModel):
    message: str
    resetCount: int = Field(..., ge=0)


# Projects
class Subgoal(BaseModel):
    id: str
    title: str
    completed: bool = False

class Phase(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    targetDate: Optional[str] = None
    completed: bool = False
    subgoals: List[Subgoal] = Field(default_factory=list)

class RecurringSession(BaseModel):
    id: str
    title: str
    days: List[str] = Field(default_factory=list)
    startTime: str = Field(..., pattern=TIME_PATTERN)
    endTime: str = Field(..., pattern=TIME_PATTERN)
    completions: List[CompletionRecordIn] = Field(default_factory=list)

class MvgIn(BaseModel):
    description: str = DEFAULT_MVG_DESCRIPTION
    completed: bool = False
    streak: int = Field(default=0, ge=0)
    completionHistory: List[CompletionRecordIn] = Field(default_factory=list)

class ProjectPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    taskCount: int = Field(default=0, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    collaborators: int = Field(default=1, ge=1)
    color: str = Field(default=DEFAULT_PROJECT_COLOR, max_length=50)
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    phases: List[Phase] = Field(default_factory=list)
    recurringSessions: List[RecurringSession] = Field(default_factory=list)
    mvg: Optional[MvgIn] = None
    nextAction: Optional[str] = None

class ProjectResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    taskCount: int
    progress: int
    collaborators: int
    color: str
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    phases: List[Dict[str, Any]]
    recurringSessions: List[Dict[str, Any]]
    mvg: Dict[str, Any]
    nextAction: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

class SessionCompletionRequest(BaseModel):
    date: Optional[str] = Field(default=None, pattern=DAY_PATTERN)
    completed: bool
    notes: Optional[str] = Field(default=None, max_length=2000)


# Analytics
class CategoryStats(BaseModel):
    total: int = Field(..., ge=0)
    completed: int = Field(..., ge=0)

class ProjectHoursSeries(BaseModel):
    id: str
    title: str
    color: str
    dailyHours: List[float]
    cumulativeHours: List[float]
    totalHours: float = Field(..., ge=0)

class WeeklyAnalyticsResponse(BaseModel):
    startDate: str
    endDate: str
    labels: List[str]
    projects: List[ProjectHoursSeries]
    totalHours: int = Field(..., ge=0)
    sessionsCompleted: int = Field(..., ge=0)
    totalSessions: int = Field(..., ge=0)
    completionRate: int = Field(..., ge=0)
    habitCategories: Dict[str, CategoryStats]
    habitWeekdayCompletions: Dict[str, List[int]]

class MonthlyCategoryStats(CategoryStats):
    dailyPercent: List[float]

class MonthlyAnalyticsResponse(BaseModel):
    month: str
    labels: List[str]
    categories: Dict[str, MonthlyCategoryStats]

class MvgDay(BaseModel):
    date: str
    completed: bool

class MvgStreakItem(BaseModel):
    projectId: str
    title: str
    color: str
    streak: int = Field(..., ge=0)
    completedToday: bool
    atRisk: bool
    days: List[MvgDay]

class MvgStreaksResponse(BaseModel):
    date: str
    items: List[MvgStreakItem]
