import uuid

import pytest

from conftest import correct_option_id
from mastermore.core.exceptions import StructuralNotFound
from mastermore.models import (
    Grade,
    ModuleCompletion,
    ModuleExamSubmission,
    PracticeQuestionSubmission,
    ProjectSubmission,
    SubmissionStatus,
)


@pytest.fixture
def project_course(builder):
    course = builder.create_course("Projects")
    project = builder.create_project(course.id, "Portfolio", points=100)
    return course, project


def test_project_below_sixty_percent_fails(recorder, grading, student, project_course):
    course, project = project_course
    recorder.enroll(student.id, course.id)
    submission = recorder.submit_project(student.id, project.id, "https://example.com/a")

    grade = grading.apply_grade("project", submission.id, score=55, feedback="Incomplete")
    assert grade.passed is False
    assert grade.percentage == 55


def test_project_above_sixty_percent_passes(db, recorder, grading, other_student, project_course):
    course, project = project_course
    recorder.enroll(other_student.id, course.id)
    submission = recorder.submit_project(other_student.id, project.id, "https://example.com/b")

    grade = grading.apply_grade("project", submission.id, score=61)
    assert grade.passed is True
    stored = db.get(ProjectSubmission, submission.id)
    assert stored.status == "graded"
    assert stored.score == 61


def test_project_score_out_of_range(recorder, grading, student, project_course):
    course, project = project_course
    recorder.enroll(student.id, course.id)
    submission = recorder.submit_project(student.id, project.id, "x")
    with pytest.raises(ValueError):
        grading.apply_grade("project", submission.id, score=101)
    with pytest.raises(ValueError):
        grading.apply_grade("project", submission.id)


def test_unknown_submission_and_kind(grading):
    with pytest.raises(StructuralNotFound):
        grading.apply_grade("project", uuid.uuid4(), score=10)
    with pytest.raises(ValueError):
        grading.list_pending_grading("homework")


def test_pending_queue_is_oldest_first(recorder, grading, builder, student, other_student, project_course):
    course, project = project_course
    for user in (other_student, student):
        recorder.enroll(user.id, course.id)
        recorder.submit_project(user.id, project.id, f"by {user.email}")

    pending = grading.list_pending_grading("project")
    assert [s.user_id for s in pending] == [other_student.id, student.id]

    grading.apply_grade("project", pending[0].id, score=80)
    assert [s.user_id for s in grading.list_pending_grading("project")] == [student.id]


def test_itemised_scores_override_total(db, recorder, grading, builder, student):
    course = builder.create_course("Writing")
    module = builder.create_module(course.id, "Essays")
    exam = builder.create_module_exam(module.id, "Essay exam", passing_score=70, questions=[
        {"question": "Explain recursion", "type": "essay", "points": 10},
        {"question": "Pick yes", "type": "multiple_choice", "points": 10,
         "options": [{"text": "yes", "is_correct": True}, {"text": "no"}]},
    ])
    essay, choice = exam.questions
    recorder.enroll(student.id, course.id)
    yes_id = str(next(o.id for o in choice.options if o.is_correct))
    recorder.submit_module_exam(student.id, exam.id, {str(essay.id): "Calls itself", str(choice.id): yes_id})

    pending = grading.list_pending_grading("module_exam")
    assert len(pending) == 1

    grade = grading.apply_grade(
        "module_exam", pending[0].id, score=0, feedback="Good", per_item_scores={essay.id: 6},
    )
    # 6 for the essay plus 10 auto-scored for the choice question
    assert grade.score == 16
    assert grade.passed is True
    assert grading.list_pending_grading("module_exam") == []
    assert db.query(ModuleCompletion).filter_by(user_id=student.id, module_id=module.id).count() == 1


def test_exam_graded_by_total_score(recorder, grading, builder, student):
    course = builder.create_course("Writing")
    module = builder.create_module(course.id, "Essays")
    exam = builder.create_module_exam(module.id, "Essay exam", passing_score=70, questions=[
        {"question": "Explain closures", "type": "essay", "points": 20},
    ])
    recorder.enroll(student.id, course.id)
    recorder.submit_module_exam(student.id, exam.id, {str(exam.questions[0].id): "..."})
    submission = grading.list_pending_grading("module_exam")[0]

    with pytest.raises(ValueError):
        grading.apply_grade("module_exam", submission.id, score=25)

    grade = grading.apply_grade("module_exam", submission.id, score=10)
    assert grade.percentage == 50
    assert grade.passed is False


def test_coding_practice_answer_pending_until_graded(db, recorder, grading, builder, student):
    course = builder.create_course("Code")
    module = builder.create_module(course.id, "Loops")
    question = builder.create_practice_question(
        module.id, "FizzBuzz", "Write fizzbuzz", "coding", points=10,
    )
    recorder.enroll(student.id, course.id)

    outcome = recorder.record_practice_submission(student.id, question.id, "for i in range(100): ...")
    assert outcome.status == SubmissionStatus.PENDING
    assert outcome.module_completed is False
    assert db.query(Grade).count() == 0

    pending = grading.list_pending_grading("practice_question")
    assert [s.id for s in pending] == [outcome.submission.id]

    grade = grading.apply_grade("practice_question", outcome.submission.id, score=7, feedback="Works")
    assert grade.passed is True
    assert grading.list_pending_grading("practice_question") == []
    assert db.query(ModuleCompletion).filter_by(user_id=student.id, module_id=module.id).count() == 1


def test_auto_graded_practice_answer_cannot_be_regraded(db, recorder, grading, builder, student):
    course = builder.create_course("Maths")
    module = builder.create_module(course.id, "Sums")
    question = builder.create_practice_question(
        module.id, "Sum", "2 + 2?", "multiple_choice", points=5,
        options=[{"text": "4", "is_correct": True}, {"text": "5"}],
    )
    recorder.enroll(student.id, course.id)
    outcome = recorder.record_practice_submission(student.id, question.id, correct_option_id(question))

    with pytest.raises(ValueError):
        grading.apply_grade("practice_question", outcome.submission.id, score=0)

    stored = db.get(PracticeQuestionSubmission, outcome.submission.id)
    assert stored.status == SubmissionStatus.CORRECT
    assert stored.points == 5
    assert db.query(Grade).count() == 1


def test_graded_exam_cannot_be_regraded(db, recorder, grading, builder, student):
    course = builder.create_course("Writing")
    module = builder.create_module(course.id, "Essays")
    exam = builder.create_module_exam(module.id, "Essay exam", passing_score=70, questions=[
        {"question": "Explain generators", "type": "essay", "points": 10},
    ])
    recorder.enroll(student.id, course.id)
    outcome = recorder.submit_module_exam(student.id, exam.id, {str(exam.questions[0].id): "yield"})

    assert grading.apply_grade("module_exam", outcome.submission.id, score=9).passed is True
    with pytest.raises(ValueError):
        grading.apply_grade("module_exam", outcome.submission.id, score=1)

    assert db.get(ModuleExamSubmission, outcome.submission.id).passed is True
    assert db.query(Grade).count() == 1
    assert db.query(ModuleCompletion).count() == 1


def test_graded_project_leaves_the_queue_for_good(grading, recorder, student, project_course):
    course, project = project_course
    recorder.enroll(student.id, course.id)
    submission = recorder.submit_project(student.id, project.id, "https://example.com/c")
    grading.apply_grade("project", submission.id, score=70)

    with pytest.raises(ValueError):
        grading.apply_grade("project", submission.id, score=10)
