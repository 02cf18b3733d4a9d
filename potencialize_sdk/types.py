"""SDK data contract types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Literal, NotRequired, TypedDict, TypeVar

AuthMode = Literal["bearer", "cookie"]
CsrfKind = Literal["access", "refresh"]
Role = Literal["admin", "teacher"]
SkillLevel = Literal["abaixo", "basico", "adequado", "avancado"]
Option = Literal["a", "b", "c", "d", "e"]
WeightMode = Literal["fixed_all", "by_skill", "per_question"]
GradingBasis = Literal["by_points", "by_accuracy"]

T = TypeVar("T")


@dataclass(frozen=True)
class Session:
    """Authenticated dashboard user as seen by the client."""

    role: str
    owner_id: int | None = None


class StoredCookie(TypedDict):
    """Cookie jar entry as persisted between processes."""

    name: str
    value: str
    domain: str
    path: str
    expires: int | None


class Claims(TypedDict, total=False):
    """Unverified access-token claims used for display and routing only."""

    sub: str
    role: str
    teacher_id: int
    type: str
    exp: int


class LoginRequest(TypedDict):
    """Credentials posted to the login endpoint."""

    email: str
    password: str


class LoginResponse(TypedDict):
    """Login endpoint success payload."""

    access_token: str
    refresh_token: NotRequired[str]
    role: Role
    teacher_id: NotRequired[int]


class RefreshResponse(TypedDict):
    """Refresh endpoint success payload."""

    access_token: str


class NormalizedError(TypedDict, total=False):
    """Display-ready error summary."""

    status: int
    message: str
    details: Any


class Paginated(TypedDict, Generic[T]):
    """Paginated list envelope returned by list endpoints."""

    items: list[T]
    page: int
    per_page: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class Ref(TypedDict):
    """Compact reference to a related entity."""

    id: int
    name: str


class ClassOut(TypedDict):
    id: int
    name: str
    year: int
    teacher: Ref
    students: NotRequired[list[Ref]]
    assessments: NotRequired[list[dict[str, Any]]]


class ClassCreate(TypedDict):
    name: str
    year: int
    teacher_id: NotRequired[int]


class StudentOut(TypedDict):
    id: int
    name: str
    register_code: NotRequired[str | None]
    class_id: int


StudentList = Paginated[StudentOut]


class StudentBulkItem(TypedDict):
    name: str
    register_code: NotRequired[str]
    class_id: NotRequired[int]


class StudentBulkRequest(TypedDict):
    class_id: NotRequired[int]
    items: list[StudentBulkItem]


class AssessmentOut(TypedDict):
    id: int
    title: str
    date: str
    weight_mode: WeightMode
    class_id: int
    subject_kind: NotRequired[str]
    subject_other: NotRequired[str | None]


class SkillWeightItem(TypedDict):
    skill_level: SkillLevel
    weight: float


class SkillWeights(TypedDict):
    items: list[SkillWeightItem]


class GradingPolicy(TypedDict):
    """Cut-offs (0..100) the server uses to classify an assessment percentage."""

    basis: GradingBasis
    count_blank_as_wrong: bool
    advanced_min: float
    adequate_min: float
    basic_min: float
    assessment_id: NotRequired[int]


class QuestionOut(TypedDict):
    id: int
    text: str
    skill_level: SkillLevel
    weight: float
    correct_option: Option
    assessment_id: int
    descriptor_id: NotRequired[int | None]


QuestionList = Paginated[QuestionOut]


class StudentAnswerOut(TypedDict):
    id: int
    student_id: int
    question_id: int
    marked_option: Option


class StudentAnswerCreate(TypedDict):
    student_id: int
    question_id: int
    marked_option: Option


class TeacherOut(TypedDict):
    id: int
    name: str
    email: str
    role: str
