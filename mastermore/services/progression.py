"""Progression evaluator.

Pure functions answering three questions about one learner in one course:
is a node accessible, is a node complete, and how far through the course is
the learner. Nothing here touches the database; callers pass the structural
tree (ORM objects or anything exposing the same attributes) and a
``LearnerState`` snapshot built by ``EntityStore.load_learner_state``.

Lesson ordering: module lessons form one sequence per module and legacy
direct course lessons form their own sequence. The two are never merged into
a single ordering. Course progress counts both.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Set

from mastermore.models.practice_question import SubmissionStatus
from mastermore.utils.levels import can_access_level


@dataclass
class LearnerState:
    """Completion and submission facts for one user within one course."""

    completed_lesson_ids: Set[Any] = field(default_factory=set)
    completed_module_ids: Set[Any] = field(default_factory=set)
    practice_statuses: Dict[Any, str] = field(default_factory=dict)
    submitted_module_exam_ids: Set[Any] = field(default_factory=set)
    passed_module_exam_ids: Set[Any] = field(default_factory=set)
    submitted_project_ids: Set[Any] = field(default_factory=set)
    graded_project_ids: Set[Any] = field(default_factory=set)
    submitted_final_exam_ids: Set[Any] = field(default_factory=set)
    passed_final_exam_ids: Set[Any] = field(default_factory=set)


def _check_index(items: Sequence[Any], index: int) -> None:
    if index < 0 or index >= len(items):
        raise IndexError(f"index {index} out of range for {len(items)} items")


def is_module_accessible(modules: Sequence[Any], index: int, state: LearnerState) -> bool:
    """First module is always open; any other needs the previous module completed."""
    _check_index(modules, index)
    if index == 0:
        return True
    return modules[index - 1].id in state.completed_module_ids


def is_lesson_accessible(ordered_lessons: Sequence[Any], index: int, state: LearnerState) -> bool:
    """First lesson of its scope is open; any other needs the previous lesson completed."""
    _check_index(ordered_lessons, index)
    if index == 0:
        return True
    return ordered_lessons[index - 1].id in state.completed_lesson_ids


def is_lesson_completed(lesson: Any, state: LearnerState) -> bool:
    return lesson.id in state.completed_lesson_ids


def is_module_completed(module: Any, state: LearnerState) -> bool:
    return module.id in state.completed_module_ids


def is_exam_eligible(module: Any, state: LearnerState) -> bool:
    """Every lesson completed and every practice question answered (graded or not)."""
    lessons_done = all(lesson.id in state.completed_lesson_ids for lesson in module.lessons)
    practice_done = all(q.id in state.practice_statuses for q in module.practice_questions)
    return lessons_done and practice_done


def compute_course_progress(all_lessons: Sequence[Any], state: LearnerState) -> int:
    """Completed lessons as a whole percentage, halves rounded up. Zero lessons gives 0."""
    total = len(all_lessons)
    if total == 0:
        return 0
    completed = sum(1 for lesson in all_lessons if lesson.id in state.completed_lesson_ids)
    return (completed * 200 + total) // (2 * total)


def compute_module_completion_eligibility(module: Any, state: LearnerState) -> bool:
    """Lessons completed, practice answers resolved, and every module exam passed.

    A practice answer still ``pending`` manual review does not count as
    resolved. Empty collections satisfy their clause.
    """
    resolved = (SubmissionStatus.CORRECT, SubmissionStatus.INCORRECT)
    lessons_done = all(lesson.id in state.completed_lesson_ids for lesson in module.lessons)
    practice_done = all(
        state.practice_statuses.get(q.id) in resolved for q in module.practice_questions
    )
    exams_passed = all(exam.id in state.passed_module_exam_ids for exam in module.exams)
    return lessons_done and practice_done and exams_passed


def can_access_projects(modules: Sequence[Any], state: LearnerState) -> bool:
    return all(module.id in state.completed_module_ids for module in modules)


def can_access_final_exam(modules: Sequence[Any], projects: Sequence[Any], state: LearnerState) -> bool:
    if not can_access_projects(modules, state):
        return False
    return all(project.id in state.graded_project_ids for project in projects)


def compute_overall_progress(
    modules: Sequence[Any],
    projects: Sequence[Any],
    final_exams: Sequence[Any],
    state: LearnerState,
) -> int:
    """Item-based percentage: modules, projects, and the final exam set count one each."""
    total = len(modules) + len(projects) + (1 if final_exams else 0)
    if total == 0:
        return 0
    done = sum(1 for m in modules if m.id in state.completed_module_ids)
    done += sum(1 for p in projects if p.id in state.graded_project_ids)
    if any(exam.id in state.passed_final_exam_ids for exam in final_exams):
        done += 1
    return (done * 200 + total) // (2 * total)


def meets_level_requirement(user_level: Optional[str], required_level: Optional[str]) -> bool:
    if not required_level:
        return True
    if not user_level:
        return False
    return can_access_level(user_level, required_level)


def index_of(items: Sequence[Any], item_id: Any) -> int:
    for idx, item in enumerate(items):
        if item.id == item_id:
            return idx
    raise ValueError(f"{item_id} is not part of this sequence")


def lesson_scope(lesson: Any) -> Sequence[Any]:
    """Ordered lessons of the module or course that owns ``lesson``."""
    if lesson.module is not None:
        return lesson.module.lessons
    return lesson.course.lessons


def course_lessons(course: Any) -> list:
    """Direct course lessons followed by module lessons in module order."""
    lessons = list(course.lessons)
    for module in course.modules:
        lessons.extend(module.lessons)
    return lessons
