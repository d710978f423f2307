"""Course content builder.

Creates course trees for administrators and keeps ``sequence_order``
strictly increasing inside every parent: new children go after the current
last one, explicit orders may not collide, and a reorder renumbers 1..n.
"""
from typing import Any, Dict, List, Optional, Sequence
import logging
from datetime import datetime
from sqlalchemy import func
from sqlalchemy.orm import Session

from mastermore.core.config import settings
from mastermore.db.sessions import transaction
from mastermore.models import (
    Course,
    Module,
    Lesson,
    PracticeQuestion,
    PracticeQuestionOption,
    ModuleExam,
    FinalExam,
    ExamQuestion,
    ExamQuestionOption,
    Project,
    User,
)
from mastermore.models.exam import OBJECTIVE_QUESTION_TYPES, MANUAL_QUESTION_TYPES
from mastermore.services.entity_store import EntityStore
from mastermore.utils.levels import is_valid_level

logger = logging.getLogger(__name__)

PRACTICE_QUESTION_TYPES = ("multiple_choice", "true_false", "coding")
EXAM_QUESTION_TYPES = OBJECTIVE_QUESTION_TYPES + MANUAL_QUESTION_TYPES


class CourseBuilder:
    """Admin-side writes for course structure.

    Usage:
        builder = CourseBuilder(db)
        course = builder.create_course("Python 101")
        module = builder.create_module(course.id, "Basics")
        builder.create_lesson(module_id=module.id, title="Variables")
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = EntityStore(db)

    # ---------- ordering ----------

    def next_order(self, column, *criteria) -> int:
        """One past the highest ``sequence_order`` among siblings, or 1 when there are none."""
        current = self.db.query(func.max(column)).filter(*criteria).scalar()
        return (current or 0) + 1

    def _resolve_order(self, model, order: Optional[int], *criteria) -> int:
        if order is None:
            return self.next_order(model.sequence_order, *criteria)
        if order < 1:
            raise ValueError("sequence_order must be a positive integer")
        clash = self.db.query(model.id).filter(model.sequence_order == order, *criteria).first()
        if clash:
            raise ValueError(f"sequence_order {order} is already used in this scope")
        return order

    def _renumber(self, items: Sequence[Any], ordered_ids: List[Any]) -> List[Any]:
        by_id = {item.id: item for item in items}
        if len(ordered_ids) != len(set(ordered_ids)):
            raise ValueError("Order list contains duplicate ids")
        if set(ordered_ids) != set(by_id):
            raise ValueError("Order list must contain every item of the scope exactly once")
        reordered = [by_id[item_id] for item_id in ordered_ids]
        for position, item in enumerate(reordered, start=1):
            item.sequence_order = position
        return reordered

    # ---------- courses, modules, lessons ----------

    def create_course(self, name: str, description: Optional[str] = None,
                      is_published: bool = True, sequence_order: Optional[int] = None) -> Course:
        with transaction(self.db):
            course = Course(
                name=name,
                description=description,
                is_published=is_published,
                sequence_order=self._resolve_order(Course, sequence_order),
            )
            self.db.add(course)
            self.db.flush()
        logger.info("Created course %s (%s)", course.id, name)
        return course

    def create_module(self, course_id, name: str, description: Optional[str] = None,
                      required_level: Optional[str] = None, sequence_order: Optional[int] = None) -> Module:
        if required_level is not None and not is_valid_level(required_level):
            raise ValueError(f"Unknown level: {required_level}")
        with transaction(self.db):
            course = self.store.get_course(course_id)
            module = Module(
                course_id=course.id,
                name=name,
                description=description,
                required_level=required_level,
                sequence_order=self._resolve_order(Module, sequence_order, Module.course_id == course.id),
            )
            self.db.add(module)
            self.db.flush()
        logger.info("Created module %s in course %s", module.id, course_id)
        return module

    def create_lesson(self, title: str, content: Optional[str] = None, course_id=None, module_id=None,
                      sequence_order: Optional[int] = None) -> Lesson:
        """Attach a lesson to a module, or directly to a course for legacy layouts."""
        if (course_id is None) == (module_id is None):
            raise ValueError("A lesson belongs to exactly one of a course or a module")
        with transaction(self.db):
            if module_id is not None:
                module = self.store.get_module(module_id)
                scope = Lesson.module_id == module.id
            else:
                course = self.store.get_course(course_id)
                scope = Lesson.course_id == course.id
            lesson = Lesson(
                title=title,
                content=content,
                course_id=course_id,
                module_id=module_id,
                sequence_order=self._resolve_order(Lesson, sequence_order, scope),
            )
            self.db.add(lesson)
            self.db.flush()
        return lesson

    # ---------- questions and exams ----------

    def _practice_options(self, question_type: str, options: Optional[List[Dict[str, Any]]]):
        options = options or []
        if question_type in OBJECTIVE_QUESTION_TYPES:
            if not any(opt.get("is_correct") for opt in options):
                raise ValueError("Choice questions need at least one correct option")
        return options

    def create_practice_question(self, module_id, title: str, question: str, type: str,
                                 points: int = 1, options: Optional[List[Dict[str, Any]]] = None,
                                 sequence_order: Optional[int] = None) -> PracticeQuestion:
        if type not in PRACTICE_QUESTION_TYPES:
            raise ValueError(f"Unsupported practice question type: {type}")
        options = self._practice_options(type, options)
        with transaction(self.db):
            module = self.store.get_module(module_id)
            item = PracticeQuestion(
                module_id=module.id,
                title=title,
                question=question,
                type=type,
                points=points,
                sequence_order=self._resolve_order(
                    PracticeQuestion, sequence_order, PracticeQuestion.module_id == module.id
                ),
                options=[
                    PracticeQuestionOption(text=opt["text"], is_correct=bool(opt.get("is_correct")), sequence_order=i)
                    for i, opt in enumerate(options, start=1)
                ],
            )
            self.db.add(item)
            self.db.flush()
        return item

    def _exam_questions(self, questions: Optional[List[Dict[str, Any]]]) -> List[ExamQuestion]:
        built = []
        for position, item in enumerate(questions or [], start=1):
            qtype = item.get("type")
            if qtype not in EXAM_QUESTION_TYPES:
                raise ValueError(f"Unsupported exam question type: {qtype}")
            options = item.get("options") or []
            if qtype in OBJECTIVE_QUESTION_TYPES and not any(opt.get("is_correct") for opt in options):
                raise ValueError("Choice questions need at least one correct option")
            built.append(ExamQuestion(
                question=item["question"],
                type=qtype,
                points=item.get("points", 1),
                sequence_order=position,
                options=[
                    ExamQuestionOption(text=opt["text"], is_correct=bool(opt.get("is_correct")), sequence_order=i)
                    for i, opt in enumerate(options, start=1)
                ],
            ))
        return built

    def create_module_exam(self, module_id, title: str, description: Optional[str] = None,
                           passing_score: Optional[int] = None, time_limit: Optional[int] = None,
                           questions: Optional[List[Dict[str, Any]]] = None) -> ModuleExam:
        passing_score = settings.DEFAULT_EXAM_PASSING_SCORE if passing_score is None else passing_score
        if not 0 <= passing_score <= 100:
            raise ValueError("passing_score must be between 0 and 100")
        built = self._exam_questions(questions)
        with transaction(self.db):
            module = self.store.get_module(module_id)
            exam = ModuleExam(
                module_id=module.id,
                title=title,
                description=description,
                passing_score=passing_score,
                time_limit=time_limit,
                questions=built,
            )
            self.db.add(exam)
            self.db.flush()
        logger.info("Created module exam %s with %d questions", exam.id, len(built))
        return exam

    def create_final_exam(self, course_id, title: str, description: Optional[str] = None,
                          passing_score: Optional[int] = None, time_limit: Optional[int] = None,
                          questions: Optional[List[Dict[str, Any]]] = None) -> FinalExam:
        passing_score = settings.DEFAULT_EXAM_PASSING_SCORE if passing_score is None else passing_score
        if not 0 <= passing_score <= 100:
            raise ValueError("passing_score must be between 0 and 100")
        built = self._exam_questions(questions)
        with transaction(self.db):
            course = self.store.get_course(course_id)
            exam = FinalExam(
                course_id=course.id,
                title=title,
                description=description,
                passing_score=passing_score,
                time_limit=time_limit,
                questions=built,
            )
            self.db.add(exam)
            self.db.flush()
        logger.info("Created final exam %s with %d questions", exam.id, len(built))
        return exam

    def create_project(self, course_id, title: str, description: Optional[str] = None,
                       requirements: Optional[str] = None, points: int = 100,
                       due_date: Optional[datetime] = None, sequence_order: Optional[int] = None) -> Project:
        if points <= 0:
            raise ValueError("points must be positive")
        with transaction(self.db):
            course = self.store.get_course(course_id)
            project = Project(
                course_id=course.id,
                title=title,
                description=description,
                requirements=requirements,
                points=points,
                due_date=due_date,
                sequence_order=self._resolve_order(Project, sequence_order, Project.course_id == course.id),
            )
            self.db.add(project)
            self.db.flush()
        return project

    # ---------- reordering ----------

    def reorder_courses(self, ordered_ids: List[Any]) -> List[Course]:
        with transaction(self.db):
            courses = self._renumber(self.db.query(Course).all(), ordered_ids)
        logger.info("Reordered %d courses", len(courses))
        return courses

    def reorder_modules(self, course_id, ordered_ids: List[Any]) -> List[Module]:
        with transaction(self.db):
            course = self.store.get_course(course_id)
            modules = self._renumber(course.modules, ordered_ids)
        logger.info("Reordered %d modules in course %s", len(modules), course_id)
        return modules

    def reorder_lessons(self, module_id, ordered_ids: List[Any]) -> List[Lesson]:
        with transaction(self.db):
            module = self.store.get_module(module_id)
            lessons = self._renumber(module.lessons, ordered_ids)
        logger.info("Reordered %d lessons in module %s", len(lessons), module_id)
        return lessons

    # ---------- learners ----------

    def set_student_level(self, user_id, level: str) -> User:
        if not is_valid_level(level):
            raise ValueError(f"Unknown level: {level}")
        with transaction(self.db):
            user = self.store.get_user(user_id)
            user.level = level
        logger.info("Student %s moved to level %s", user_id, level)
        return user
