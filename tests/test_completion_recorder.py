import pytest

from conftest import correct_option_id, wrong_option_id
from mastermore.core.exceptions import AccessDenied, DuplicateSubmission, NotEnrolled, StructuralNotFound
from mastermore.models import Enrollment, Grade, LessonCompletion, ModuleCompletion, PracticeQuestionSubmission
from mastermore.models import SubmissionStatus
from mastermore.services.course_progress import CourseProgressService


def choice(text_ok="4", text_bad="5"):
    return [{"text": text_ok, "is_correct": True}, {"text": text_bad}]


@pytest.fixture
def two_lesson_course(builder):
    course = builder.create_course("Intro")
    first = builder.create_lesson("Lesson 1", course_id=course.id)
    second = builder.create_lesson("Lesson 2", course_id=course.id)
    return course, first, second


@pytest.fixture
def module_course(builder):
    """Two modules; the first has a lesson, a practice question and an exam worth 100 points."""
    course = builder.create_course("Python")
    m1 = builder.create_module(course.id, "Basics")
    m2 = builder.create_module(course.id, "Functions")
    lesson = builder.create_lesson("Variables", module_id=m1.id)
    next_lesson = builder.create_lesson("Defining functions", module_id=m2.id)
    question = builder.create_practice_question(
        m1.id, "Sum", "What is 2 + 2?", "multiple_choice", points=5, options=choice()
    )
    exam = builder.create_module_exam(m1.id, "Basics exam", passing_score=70, questions=[
        {"question": "Pick yes", "type": "multiple_choice", "points": 80, "options": choice("yes", "no")},
        {"question": "Python is typed", "type": "true_false", "points": 20, "options": choice("True", "False")},
    ])
    return course, m1, m2, lesson, next_lesson, question, exam


# ---------- enrollment ----------

def test_enroll_creates_zero_progress(db, recorder, student, two_lesson_course):
    course, _, _ = two_lesson_course
    enrollment = recorder.enroll(student.id, course.id)
    assert enrollment.is_completed is False
    assert recorder.get_cached_progress(student.id, course.id) == 0


def test_enroll_twice_returns_existing(db, recorder, student, two_lesson_course):
    course, _, _ = two_lesson_course
    first = recorder.enroll(student.id, course.id)
    second = recorder.enroll(student.id, course.id)
    assert first.id == second.id
    assert db.query(Enrollment).count() == 1


def test_cannot_enroll_in_unpublished_course(recorder, builder, student):
    course = builder.create_course("Draft", is_published=False)
    with pytest.raises(StructuralNotFound):
        recorder.enroll(student.id, course.id)


def test_actions_require_enrollment(recorder, student, two_lesson_course):
    course, first, _ = two_lesson_course
    with pytest.raises(NotEnrolled):
        recorder.record_lesson_completion(student.id, first.id)


# ---------- lessons ----------

def test_two_lesson_course_scenario(db, recorder, student, two_lesson_course):
    course, first, second = two_lesson_course
    recorder.enroll(student.id, course.id)

    with pytest.raises(AccessDenied):
        recorder.record_lesson_completion(student.id, second.id)
    assert db.query(LessonCompletion).count() == 0

    assert recorder.record_lesson_completion(student.id, first.id) == 50
    assert recorder.get_cached_progress(student.id, course.id) == 50

    assert recorder.record_lesson_completion(student.id, second.id) == 100
    enrollment = db.query(Enrollment).filter_by(user_id=student.id, course_id=course.id).one()
    assert enrollment.is_completed is True
    assert enrollment.completed_at is not None


def test_recompleting_a_lesson_keeps_one_row(db, recorder, student, two_lesson_course):
    course, first, _ = two_lesson_course
    recorder.enroll(student.id, course.id)
    recorder.record_lesson_completion(student.id, first.id)
    assert recorder.record_lesson_completion(student.id, first.id) == 50
    assert db.query(LessonCompletion).count() == 1


def test_lesson_must_belong_to_claimed_course(recorder, builder, student, two_lesson_course):
    course, first, _ = two_lesson_course
    other = builder.create_course("Other")
    recorder.enroll(student.id, other.id)
    with pytest.raises(StructuralNotFound):
        recorder.record_lesson_completion(student.id, first.id, course_id=other.id)


def test_locked_module_lessons_are_rejected(recorder, student, module_course):
    course, _, _, _, next_lesson, _, _ = module_course
    recorder.enroll(student.id, course.id)
    with pytest.raises(AccessDenied):
        recorder.record_lesson_completion(student.id, next_lesson.id)


def test_progress_view_locks_lessons_of_locked_module(db, recorder, student, module_course):
    course, _, _, _, next_lesson, _, _ = module_course
    recorder.enroll(student.id, course.id)

    view = CourseProgressService(db).build(student.id, course.id)
    first, second = view["modules"]
    assert first["lessons"][0]["is_accessible"] is True
    assert second["is_accessible"] is False
    assert [lesson["is_accessible"] for lesson in second["lessons"]] == [False]
    assert second["lessons"][0]["id"] == str(next_lesson.id)


def test_level_requirement_gates_module(db, recorder, builder, student):
    course = builder.create_course("Advanced")
    module = builder.create_module(course.id, "Generators", required_level="M1")
    lesson = builder.create_lesson("yield", module_id=module.id)
    recorder.enroll(student.id, course.id)

    with pytest.raises(AccessDenied):
        recorder.record_lesson_completion(student.id, lesson.id)

    builder.set_student_level(student.id, "M1")
    assert recorder.record_lesson_completion(student.id, lesson.id) == 100


def test_empty_module_completes_on_refresh(db, recorder, builder, student):
    course = builder.create_course("Placeholder")
    module = builder.create_module(course.id, "Coming soon")
    recorder.enroll(student.id, course.id)
    assert recorder.refresh_module_completion(student.id, module.id) is True
    assert recorder.refresh_module_completion(student.id, module.id) is False
    assert db.query(ModuleCompletion).count() == 1


# ---------- practice questions ----------

def test_practice_answer_graded_immediately(db, recorder, student, module_course):
    course, m1, _, _, _, question, _ = module_course
    recorder.enroll(student.id, course.id)
    outcome = recorder.record_practice_submission(student.id, question.id, correct_option_id(question))
    assert outcome.status == SubmissionStatus.CORRECT
    assert outcome.points_awarded == 5
    grade = db.query(Grade).filter_by(item_type="practice_question").one()
    assert grade.passed is True
    assert grade.percentage == 100


def test_duplicate_practice_submission_keeps_first_result(db, recorder, student, module_course):
    course, _, _, _, _, question, _ = module_course
    recorder.enroll(student.id, course.id)
    recorder.record_practice_submission(student.id, question.id, correct_option_id(question))

    with pytest.raises(DuplicateSubmission) as exc_info:
        recorder.record_practice_submission(student.id, question.id, wrong_option_id(question))

    assert exc_info.value.existing.points == 5
    stored = db.query(PracticeQuestionSubmission).one()
    assert stored.points == 5
    assert stored.status == SubmissionStatus.CORRECT


def test_true_false_answers_match_option_text(recorder, builder, student):
    course = builder.create_course("Logic")
    module = builder.create_module(course.id, "Booleans")
    question = builder.create_practice_question(
        module.id, "Truth", "Is 1 == 1?", "true_false", options=choice("True", "False")
    )
    recorder.enroll(student.id, course.id)
    outcome = recorder.record_practice_submission(student.id, question.id, "true")
    assert outcome.is_correct
    # module has no lessons or exams, so a resolved answer completes it
    assert outcome.module_completed


def test_practice_question_in_wrong_module(recorder, student, module_course):
    course, _, m2, _, _, question, _ = module_course
    recorder.enroll(student.id, course.id)
    with pytest.raises(StructuralNotFound):
        recorder.record_practice_submission(student.id, question.id, "x", module_id=m2.id)


# ---------- module exams ----------

def test_module_exam_scenario_unlocks_next_module(db, recorder, student, module_course):
    course, m1, m2, lesson, next_lesson, question, exam = module_course
    recorder.enroll(student.id, course.id)

    with pytest.raises(AccessDenied):
        recorder.submit_module_exam(student.id, exam.id, {})

    recorder.record_lesson_completion(student.id, lesson.id)
    with pytest.raises(AccessDenied):
        recorder.submit_module_exam(student.id, exam.id, {})

    recorder.record_practice_submission(student.id, question.id, wrong_option_id(question))
    assert db.query(ModuleCompletion).count() == 0

    q1, q2 = exam.questions
    outcome = recorder.submit_module_exam(student.id, exam.id, {
        str(q1.id): correct_option_id(q1),
        str(q2.id): "False",
    })
    assert outcome.graded
    assert outcome.total_score == 80
    assert outcome.total_points == 100
    assert outcome.percentage == 80
    assert outcome.passed is True
    assert outcome.module_completed is True
    assert db.query(ModuleCompletion).filter_by(user_id=student.id, module_id=m1.id).count() == 1

    assert recorder.record_lesson_completion(student.id, next_lesson.id) == 100


def test_failed_module_exam_is_single_attempt(db, recorder, student, module_course):
    course, _, _, lesson, next_lesson, question, exam = module_course
    recorder.enroll(student.id, course.id)
    recorder.record_lesson_completion(student.id, lesson.id)
    recorder.record_practice_submission(student.id, question.id, correct_option_id(question))

    outcome = recorder.submit_module_exam(student.id, exam.id, {})
    assert outcome.total_score == 0
    assert outcome.passed is False
    assert db.query(ModuleCompletion).count() == 0

    with pytest.raises(DuplicateSubmission):
        recorder.submit_module_exam(student.id, exam.id, {})
    with pytest.raises(AccessDenied):
        recorder.record_lesson_completion(student.id, next_lesson.id)


def test_exam_with_essay_waits_for_grader(db, recorder, builder, student):
    course = builder.create_course("Writing")
    module = builder.create_module(course.id, "Essays")
    exam = builder.create_module_exam(module.id, "Essay exam", questions=[
        {"question": "Explain recursion", "type": "essay", "points": 10},
    ])
    recorder.enroll(student.id, course.id)
    outcome = recorder.submit_module_exam(student.id, exam.id, {str(exam.questions[0].id): "It calls itself"})
    assert outcome.graded is False
    assert outcome.percentage is None
    assert db.query(Grade).count() == 0
    assert db.query(ModuleCompletion).count() == 0


# ---------- projects and final exams ----------

def test_projects_locked_until_modules_complete(recorder, student, module_course, builder):
    course = module_course[0]
    project = builder.create_project(course.id, "Capstone")
    recorder.enroll(student.id, course.id)
    with pytest.raises(AccessDenied):
        recorder.submit_project(student.id, project.id, "https://example.com/repo")


def test_project_resubmission_only_after_revision_request(recorder, grading, builder, student):
    course = builder.create_course("Projects only")
    project = builder.create_project(course.id, "Todo app")
    recorder.enroll(student.id, course.id)

    submission = recorder.submit_project(student.id, project.id, "v1")
    with pytest.raises(DuplicateSubmission):
        recorder.submit_project(student.id, project.id, "v2")

    grading.apply_grade("project", submission.id, score=40, feedback="Add tests", request_revision=True)
    resubmitted = recorder.submit_project(student.id, project.id, "v2")
    assert resubmitted.id == submission.id
    assert resubmitted.content == "v2"
    assert resubmitted.status == "submitted"


def test_final_exam_requires_graded_projects(recorder, grading, builder, student):
    course = builder.create_course("Finals")
    project = builder.create_project(course.id, "Capstone")
    final = builder.create_final_exam(course.id, "Final", passing_score=50, questions=[
        {"question": "Pick yes", "type": "multiple_choice", "points": 10, "options": choice("yes", "no")},
    ])
    recorder.enroll(student.id, course.id)

    with pytest.raises(AccessDenied):
        recorder.submit_final_exam(student.id, final.id, {})

    submission = recorder.submit_project(student.id, project.id, "done")
    with pytest.raises(AccessDenied):
        recorder.submit_final_exam(student.id, final.id, {})

    grading.apply_grade("project", submission.id, score=90)
    question = final.questions[0]
    outcome = recorder.submit_final_exam(student.id, final.id, {str(question.id): correct_option_id(question)})
    assert outcome.passed is True
    assert outcome.percentage == 100
