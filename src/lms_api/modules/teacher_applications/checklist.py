"""
Teacher Application Checklist

Completeness scoring over the fixed set of required signals. The score is a
derived value: it is always recomputed from the application and never stored.
"""

from collections.abc import Callable, Mapping
from typing import Any

from lms_api.modules.teacher_applications.models import DocumentType


def _field(source: Any, name: str, default: Any = None) -> Any:
    """Read a field from an ORM row, a Pydantic model or a plain dict."""
    if isinstance(source, Mapping):
        return source.get(name, default)
    return getattr(source, name, default)


def _document_flag(document: DocumentType) -> Callable[[Any], bool]:
    def check(application: Any) -> bool:
        documents = _field(application, "required_documents") or {}
        return bool(_field(documents, document.value, False))

    return check


def _has_teaching_experience(application: Any) -> bool:
    experience = _field(application, "teaching_experience") or {}
    return (_field(experience, "years", 0) or 0) > 0


def _has_specializations(application: Any) -> bool:
    return len(_field(application, "specializations") or []) > 0


# Every signal carries equal weight
REQUIRED_SIGNALS: dict[str, Callable[[Any], bool]] = {
    **{f"document:{doc.value}": _document_flag(doc) for doc in DocumentType},
    "teaching_experience": _has_teaching_experience,
    "specializations": _has_specializations,
}


def _percentage(satisfied: int, total: int) -> int:
    """round(100 * satisfied / total), halves rounded up."""
    if total == 0:
        return 0
    return (200 * satisfied + total) // (2 * total)


def compute_completeness(application: Any) -> int:
    """
    Compute the completeness score (0-100) of an application.

    Args:
        application: TeacherApplication row, submission schema or dict

    Returns:
        Integer percentage of satisfied signals
    """
    satisfied = sum(1 for check in REQUIRED_SIGNALS.values() if check(application))
    return _percentage(satisfied, len(REQUIRED_SIGNALS))


def missing_signals(application: Any) -> list[str]:
    """Names of the signals the application does not yet satisfy."""
    return [name for name, check in REQUIRED_SIGNALS.items() if not check(application)]
