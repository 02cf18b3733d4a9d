"""Ordered, first-match route rule tables keyed by method and path."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar

import httpx

from potencialize_sdk.types import CsrfKind

E = TypeVar("E")

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_API_BASE_PATH = re.compile(r"^/api/v\d+")


@dataclass(frozen=True)
class RouteRule(Generic[E]):
    """Pattern plus optional method set mapped to an effect."""

    name: str
    pattern: re.Pattern[str]
    effect: E
    methods: frozenset[str] | None = None

    def matches(self, method: str, path: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        return self.pattern.search(path) is not None


def first_match(rules: Iterable[RouteRule[E]], method: str, path: str) -> RouteRule[E] | None:
    """Return the first rule matching ``method`` and ``path``."""
    for rule in rules:
        if rule.matches(method, path):
            return rule
    return None


def normalize_path(url: httpx.URL | str) -> str:
    """Return the URL path without scheme, host, query or trailing slashes."""
    path = httpx.URL(str(url)).path.rstrip("/")
    return path or "/"


def strip_base_path(path: str) -> str:
    """Drop a leading ``/api/vN`` prefix so rules describe resource paths only."""
    return _API_BASE_PATH.sub("", path) or "/"


CSRF_RULES: tuple[RouteRule[CsrfKind], ...] = (
    RouteRule("auth_refresh", re.compile(r"/auth/refresh$"), "refresh", MUTATING_METHODS),
    RouteRule(
        "auth_logout_refresh", re.compile(r"/auth/logout-refresh$"), "refresh", MUTATING_METHODS
    ),
)


def csrf_kind_for(method: str, url: httpx.URL | str) -> CsrfKind:
    """Pick the anti-forgery cookie scope for a mutating request."""
    rule = first_match(CSRF_RULES, method, normalize_path(url))
    return rule.effect if rule is not None else "access"


DEFAULT_MESSAGES: Mapping[int, str] = {
    401: "Not authenticated.",
    403: "Forbidden.",
    404: "Not found.",
    409: "Conflict or duplicate.",
    422: "Validation failed: check the fields.",
}

ERROR_MESSAGE_RULES: tuple[RouteRule[Mapping[int, str]], ...] = (
    RouteRule(
        "auth_login",
        re.compile(r"^/auth/login$"),
        {401: "Invalid e-mail or password."},
        frozenset({"POST"}),
    ),
    RouteRule(
        "classes_list",
        re.compile(r"^/classes/?$"),
        {403: "Permission denied for teachers."},
        frozenset({"GET"}),
    ),
    RouteRule(
        "classes_detail", re.compile(r"^/classes/\d+$"), {404: "Class not found."}, frozenset({"GET"})
    ),
    RouteRule(
        "teachers_post",
        re.compile(r"^/teachers/?$"),
        {409: "E-mail already in use."},
        frozenset({"POST"}),
    ),
    RouteRule(
        "teachers_put",
        re.compile(r"^/teachers/\d+$"),
        {409: "E-mail already in use."},
        frozenset({"PUT"}),
    ),
    RouteRule(
        "student_answers_post",
        re.compile(r"^/student-answers/?$"),
        {409: "Duplicate answer.", 404: "Student or question not found."},
        frozenset({"POST"}),
    ),
    RouteRule(
        "student_answers_bulk",
        re.compile(r"^/student-answers/bulk$"),
        {409: "Duplicate answer (payload or database).", 404: "Student or question not found."},
        frozenset({"POST"}),
    ),
    RouteRule(
        "student_answer_detail",
        re.compile(r"^/student-answers/\d+$"),
        {404: "Answer not found."},
        frozenset({"GET", "PUT", "DELETE"}),
    ),
    RouteRule(
        "students_bulk",
        re.compile(r"^/students/bulk$"),
        {404: "Class not found."},
        frozenset({"POST"}),
    ),
    RouteRule(
        "questions_bulk",
        re.compile(r"^/questions/bulk(?:/\d+)?$"),
        {404: "Assessment not found."},
        frozenset({"POST"}),
    ),
    RouteRule(
        "questions_detail",
        re.compile(r"^/questions/\d+$"),
        {404: "Question not found."},
        frozenset({"GET", "PUT", "DELETE"}),
    ),
    RouteRule(
        "assessments_matrix",
        re.compile(r"^/assessments/\d+/analytics/matrix$"),
        {404: "Assessment not found."},
        frozenset({"GET"}),
    ),
    RouteRule(
        "assessments_overview",
        re.compile(r"^/assessments/\d+/analytics/overview$"),
        {404: "Assessment not found."},
        frozenset({"GET"}),
    ),
)
