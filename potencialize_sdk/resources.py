"""Typed wrappers for the dashboard REST resources."""

from __future__ import annotations

from typing import Any

from potencialize_sdk.client import AuthenticatedClient
from potencialize_sdk.types import (
    AssessmentOut,
    ClassCreate,
    ClassOut,
    GradingPolicy,
    Paginated,
    QuestionList,
    QuestionOut,
    SkillWeights,
    StudentAnswerCreate,
    StudentAnswerOut,
    StudentBulkRequest,
    StudentList,
    StudentOut,
    TeacherOut,
)


def _params(**values: Any) -> dict[str, Any]:
    """Drop unset query parameters."""
    return {key: value for key, value in values.items() if value is not None}


def _fields_header(x_fields: str | None) -> dict[str, str] | None:
    """Build the ``X-Fields`` projection header when requested."""
    return {"X-Fields": x_fields} if x_fields else None


class _Resource:
    def __init__(self, client: AuthenticatedClient) -> None:
        self._client = client


class ClassesAPI(_Resource):
    async def list(self, x_fields: str | None = None) -> list[ClassOut]:
        return await self._client.request_json("GET", "/classes/", headers=_fields_header(x_fields))

    async def get(self, class_id: int, x_fields: str | None = None) -> ClassOut:
        return await self._client.request_json(
            "GET", f"/classes/{class_id}", headers=_fields_header(x_fields)
        )

    async def create(self, payload: ClassCreate) -> ClassOut:
        return await self._client.request_json("POST", "/classes/", json=payload)

    async def update(self, class_id: int, payload: dict[str, Any]) -> ClassOut:
        return await self._client.request_json("PUT", f"/classes/{class_id}", json=payload)

    async def delete(self, class_id: int) -> None:
        await self._client.delete(f"/classes/{class_id}")


class StudentsAPI(_Resource):
    async def list(
        self,
        page: int | None = None,
        per_page: int | None = None,
        class_id: int | None = None,
        name: str | None = None,
        register_code: str | None = None,
        sort: str | None = None,
    ) -> StudentList:
        return await self._client.request_json(
            "GET",
            "/students/",
            params=_params(
                page=page,
                per_page=per_page,
                class_id=class_id,
                name=name,
                register_code=register_code,
                sort=sort,
            ),
        )

    async def get(self, student_id: int) -> StudentOut:
        return await self._client.request_json("GET", f"/students/{student_id}")

    async def create(self, payload: dict[str, Any]) -> StudentOut:
        return await self._client.request_json("POST", "/students/", json=payload)

    async def update(self, student_id: int, payload: dict[str, Any]) -> StudentOut:
        return await self._client.request_json("PUT", f"/students/{student_id}", json=payload)

    async def delete(self, student_id: int) -> None:
        await self._client.delete(f"/students/{student_id}")

    async def list_all_by_class(self, class_id: int, per_page: int = 100) -> list[StudentOut]:
        """Walk every page of a class roster, ordered by name then newest first."""
        page = 1
        students: list[StudentOut] = []
        while True:
            page_data = await self.list(
                class_id=class_id, page=page, per_page=per_page, sort="name,-created_at"
            )
            items = page_data.get("items", [])
            students.extend(items)
            if page >= page_data.get("total_pages", 0) or not items:
                return students
            page += 1

    async def bulk_create(self, payload: StudentBulkRequest) -> Any:
        return await self._client.request_json("POST", "/students/bulk", json=payload)


class AssessmentsAPI(_Resource):
    async def list(self, x_fields: str | None = None) -> list[AssessmentOut]:
        return await self._client.request_json(
            "GET", "/assessments/", headers=_fields_header(x_fields)
        )

    async def get(self, assessment_id: int, x_fields: str | None = None) -> AssessmentOut:
        return await self._client.request_json(
            "GET", f"/assessments/{assessment_id}", headers=_fields_header(x_fields)
        )

    async def create(self, payload: dict[str, Any]) -> AssessmentOut:
        return await self._client.request_json("POST", "/assessments/", json=payload)

    async def update(self, assessment_id: int, payload: dict[str, Any]) -> AssessmentOut:
        return await self._client.request_json(
            "PUT", f"/assessments/{assessment_id}", json=payload
        )

    async def delete(self, assessment_id: int) -> None:
        await self._client.delete(f"/assessments/{assessment_id}")

    async def overview(self, assessment_id: int, x_fields: str | None = None) -> dict[str, Any]:
        return await self._client.request_json(
            "GET",
            f"/assessments/{assessment_id}/analytics/overview",
            headers=_fields_header(x_fields),
        )

    async def matrix(
        self,
        assessment_id: int,
        students_page: int | None = None,
        per_page: int | None = None,
    ) -> dict[str, Any]:
        return await self._client.request_json(
            "GET",
            f"/assessments/{assessment_id}/analytics/matrix",
            params=_params(students_page=students_page, per_page=per_page),
        )

    async def skill_weights(self, assessment_id: int) -> SkillWeights:
        return await self._client.request_json(
            "GET", f"/assessments/{assessment_id}/skills-weights"
        )

    async def put_skill_weights(self, assessment_id: int, payload: SkillWeights) -> SkillWeights:
        return await self._client.request_json(
            "PUT", f"/assessments/{assessment_id}/skills-weights", json=payload
        )

    async def grading_policy(
        self, assessment_id: int, x_fields: str | None = None
    ) -> GradingPolicy:
        return await self._client.request_json(
            "GET",
            f"/assessments/{assessment_id}/grading-policy",
            headers=_fields_header(x_fields),
        )

    async def put_grading_policy(
        self,
        assessment_id: int,
        payload: GradingPolicy,
        x_fields: str | None = None,
    ) -> GradingPolicy:
        return await self._client.request_json(
            "PUT",
            f"/assessments/{assessment_id}/grading-policy",
            json=payload,
            headers=_fields_header(x_fields),
        )


class QuestionsAPI(_Resource):
    async def list(
        self,
        page: int | None = None,
        per_page: int | None = None,
        assessment_id: int | None = None,
        skill_level: str | None = None,
        correct_option: str | None = None,
        descriptor_id: int | None = None,
        sort: str | None = None,
    ) -> QuestionList:
        return await self._client.request_json(
            "GET",
            "/questions/",
            params=_params(
                page=page,
                per_page=per_page,
                assessment_id=assessment_id,
                skill_level=skill_level,
                correct_option=correct_option,
                descriptor_id=descriptor_id,
                sort=sort,
            ),
        )

    async def get(self, question_id: int) -> QuestionOut:
        return await self._client.request_json("GET", f"/questions/{question_id}")

    async def create(self, payload: dict[str, Any]) -> QuestionOut:
        return await self._client.request_json("POST", "/questions/", json=payload)

    async def update(self, question_id: int, payload: dict[str, Any]) -> QuestionOut:
        return await self._client.request_json("PUT", f"/questions/{question_id}", json=payload)

    async def delete(self, question_id: int) -> None:
        await self._client.delete(f"/questions/{question_id}")

    async def bulk_create_for_assessment(
        self, assessment_id: int, items: list[dict[str, Any]]
    ) -> Any:
        """Create questions that inherit ``assessment_id`` from the path."""
        return await self._client.request_json(
            "POST", f"/questions/bulk/{assessment_id}", json={"items": items}
        )


class StudentAnswersAPI(_Resource):
    async def create(self, payload: StudentAnswerCreate) -> StudentAnswerOut:
        return await self._client.request_json("POST", "/student-answers/", json=payload)

    async def update(self, answer_id: int, marked_option: str) -> StudentAnswerOut:
        return await self._client.request_json(
            "PUT", f"/student-answers/{answer_id}", json={"marked_option": marked_option}
        )

    async def delete(self, answer_id: int) -> None:
        await self._client.delete(f"/student-answers/{answer_id}")

    async def bulk_create(self, items: list[StudentAnswerCreate]) -> Any:
        """Insert answers in one call; duplicates are rejected with 409."""
        return await self._client.request_json(
            "POST", "/student-answers/bulk", json={"items": items}
        )

    async def student_results(self, student_id: int, assessment_id: int) -> dict[str, Any]:
        return await self._client.request_json(
            "GET", f"/students/{student_id}/assessments/{assessment_id}/results"
        )

    async def question_result(
        self,
        question_id: int,
        student_id: int | None = None,
        reveal_correct: bool | None = None,
    ) -> dict[str, Any]:
        reveal = None if reveal_correct is None else str(reveal_correct).lower()
        return await self._client.request_json(
            "GET",
            f"/questions/{question_id}/result",
            params=_params(student_id=student_id, reveal_correct=reveal),
        )


class TeachersAPI(_Resource):
    async def list(
        self,
        page: int | None = None,
        per_page: int | None = None,
        q: str | None = None,
        role: str | None = None,
        sort: str | None = None,
    ) -> Paginated[TeacherOut]:
        return await self._client.request_json(
            "GET",
            "/teachers/",
            params=_params(page=page, per_page=per_page, q=q, role=role, sort=sort),
        )


class DashboardAPI:
    """All dashboard resources sharing one authenticated client."""

    def __init__(self, client: AuthenticatedClient) -> None:
        self.classes = ClassesAPI(client)
        self.students = StudentsAPI(client)
        self.assessments = AssessmentsAPI(client)
        self.questions = QuestionsAPI(client)
        self.student_answers = StudentAnswersAPI(client)
        self.teachers = TeachersAPI(client)
