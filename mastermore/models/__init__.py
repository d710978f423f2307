"""Database models."""
from mastermore.models.user import User
from mastermore.models.course import Course, Module
from mastermore.models.lesson import Lesson
from mastermore.models.practice_question import (
    PracticeQuestion,
    PracticeQuestionOption,
    PracticeQuestionSubmission,
    SubmissionStatus,
)
from mastermore.models.exam import (
    ModuleExam,
    FinalExam,
    ExamQuestion,
    ExamQuestionOption,
    ModuleExamSubmission,
    FinalExamSubmission,
    ExamAnswer,
)
from mastermore.models.project import Project, ProjectSubmission, ProjectStatus
from mastermore.models.progress import Enrollment, LessonCompletion, ModuleCompletion, UserProgress
from mastermore.models.grade import Grade

__all__ = [
    "User",
    "Course",
    "Module",
    "Lesson",
    "PracticeQuestion",
    "PracticeQuestionOption",
    "PracticeQuestionSubmission",
    "SubmissionStatus",
    "ModuleExam",
    "FinalExam",
    "ExamQuestion",
    "ExamQuestionOption",
    "ModuleExamSubmission",
    "FinalExamSubmission",
    "ExamAnswer",
    "Project",
    "ProjectSubmission",
    "ProjectStatus",
    "Enrollment",
    "LessonCompletion",
    "ModuleCompletion",
    "UserProgress",
    "Grade",
]
