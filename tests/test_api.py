from conftest import auth_headers
from mastermore.core.config import settings


def create(client, headers, path, payload):
    response = client.post(path, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["id"]


def build_course(client, admin):
    """Two modules with one lesson each; the first also has a practice question and an exam."""
    h = auth_headers(admin)
    course_id = create(client, h, "/admin/courses", {"name": "Python"})
    m1 = create(client, h, f"/admin/courses/{course_id}/modules", {"name": "Basics"})
    m2 = create(client, h, f"/admin/courses/{course_id}/modules", {"name": "Functions"})
    lesson1 = create(client, h, f"/admin/modules/{m1}/lessons", {"title": "Variables", "content": "x = 1"})
    lesson2 = create(client, h, f"/admin/modules/{m2}/lessons", {"title": "def"})
    question = create(client, h, f"/admin/modules/{m1}/practice-questions", {
        "title": "Sum",
        "question": "2 + 2?",
        "type": "multiple_choice",
        "points": 5,
        "options": [{"text": "4", "is_correct": True}, {"text": "5"}],
    })
    exam = create(client, h, f"/admin/modules/{m1}/exams", {
        "title": "Basics exam",
        "passing_score": 70,
        "questions": [{
            "question": "Is Python interpreted?",
            "type": "multiple_choice",
            "points": 10,
            "options": [{"text": "yes", "is_correct": True}, {"text": "no"}],
        }],
    })
    return {"course": course_id, "m1": m1, "m2": m2, "lesson1": lesson1, "lesson2": lesson2,
            "question": question, "exam": exam}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_register_login_and_me(client):
    response = client.post("/auth/register", json={
        "name": "Ada", "email": "ada@example.com", "password": "lovelace1",
    })
    assert response.status_code == 201
    token = response.json()["access_token"]
    assert response.json()["level"] == "B2"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "ada@example.com"
    assert me["role"] == "student"
    assert me["is_admin"] is False
    assert me["level"] == "B2"
    assert me["accessible_levels"] == ["B2"]
    assert me["next_level"] == "B3"
    assert me["level_description"] == "Beginner Level 2"

    duplicate = client.post("/auth/register", json={
        "name": "Ada", "email": "ada@example.com", "password": "lovelace1",
    })
    assert duplicate.status_code == 400

    assert client.post("/auth/login", json={"email": "ada@example.com", "password": "lovelace1"}).status_code == 200
    assert client.post("/auth/login", json={"email": "ada@example.com", "password": "wrong"}).status_code == 401


def test_admin_routes_reject_students(client, student):
    response = client.post("/admin/courses", json={"name": "Nope"}, headers=auth_headers(student))
    assert response.status_code == 403
    assert client.post("/admin/courses", json={"name": "Nope"}).status_code in (401, 403)


def test_admin_email_allow_list(client, student, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAILS", ["Student@Example.com"])
    response = client.post("/admin/courses", json={"name": "Allowed"}, headers=auth_headers(student))
    assert response.status_code == 201


def test_learner_flow(client, admin, student):
    ids = build_course(client, admin)
    h = auth_headers(student)

    courses = client.get("/courses", headers=h).json()
    assert [c["is_enrolled"] for c in courses] == [False]

    not_enrolled = client.post(f"/courses/{ids['course']}/lessons/{ids['lesson1']}/complete", headers=h)
    assert not_enrolled.status_code == 403

    assert client.post(f"/courses/{ids['course']}/enroll", headers=h).status_code == 200

    fresh = client.get(f"/courses/{ids['course']}/progress", headers=h).json()
    assert fresh["modules"][1]["is_accessible"] is False
    assert fresh["modules"][1]["lessons"][0]["is_accessible"] is False
    assert fresh["modules"][0]["lessons"][0]["is_accessible"] is True

    locked = client.get(f"/modules/{ids['m2']}", headers=h)
    assert locked.status_code == 403
    assert locked.json()["locked"] is True

    exams = client.get(f"/modules/{ids['m1']}/exams", headers=h).json()
    assert exams[0]["questions"] == []

    done = client.post(f"/courses/{ids['course']}/lessons/{ids['lesson1']}/complete", headers=h).json()
    assert done["progress"] == 50
    assert done["course_completed"] is False

    module = client.get(f"/modules/{ids['m1']}", headers=h).json()
    options = module["practice_questions"][0]["options"]
    assert all("is_correct" not in opt for opt in options)
    right = next(opt["id"] for opt in options if opt["text"] == "4")

    path = f"/modules/{ids['m1']}/practice-questions/{ids['question']}/submit"
    first = client.post(path, json={"answer": right}, headers=h).json()
    assert first["is_correct"] is True
    assert first["duplicate"] is False
    assert first["correct_option_id"] == right
    again = client.post(path, json={"answer": "anything"}, headers=h)
    assert again.status_code == 200
    assert again.json()["duplicate"] is True
    assert again.json()["points_awarded"] == 5
    assert again.json()["correct_option_id"] == right

    exam = client.get(f"/modules/{ids['m1']}/exams", headers=h).json()[0]
    question = exam["questions"][0]
    yes = next(opt["id"] for opt in question["options"] if opt["text"] == "yes")
    result = client.post(f"/exams/{ids['exam']}/submit", json={"answers": {question["id"]: yes}}, headers=h).json()
    assert result["passed"] is True
    assert result["percentage"] == 100
    assert result["module_completed"] is True

    repeat = client.post(f"/exams/{ids['exam']}/submit", json={"answers": {}}, headers=h).json()
    assert repeat["duplicate"] is True
    assert repeat["passed"] is True

    assert client.get(f"/modules/{ids['m2']}", headers=h).status_code == 200

    progress = client.get(f"/courses/{ids['course']}/progress", headers=h).json()
    assert progress["percentage"] == 50
    assert progress["modules"][0]["is_completed"] is True
    assert progress["modules"][1]["is_accessible"] is True
    assert progress["modules"][1]["is_completed"] is False
    assert progress["average_grade"] == 100


def test_project_grading_through_admin_api(client, admin, student):
    ha, hs = auth_headers(admin), auth_headers(student)
    course_id = create(client, ha, "/admin/courses", {"name": "Projects"})
    project_id = create(client, ha, f"/admin/courses/{course_id}/projects", {"title": "Portfolio"})

    client.post(f"/courses/{course_id}/enroll", headers=hs)
    projects = client.get(f"/courses/{course_id}/projects", headers=hs).json()
    assert projects["can_access"] is True

    submitted = client.post(f"/projects/{project_id}/submit", json={"content": "https://example.com"}, headers=hs)
    assert submitted.json()["status"] == "submitted"

    queue = client.get("/admin/grading", params={"type": "project"}, headers=ha).json()
    assert len(queue) == 1
    assert queue[0]["content"] == "https://example.com"

    graded = client.post("/admin/grading", json={
        "kind": "project",
        "submission_id": queue[0]["submission_id"],
        "score": 55,
        "feedback": "Needs tests",
    }, headers=ha).json()
    assert graded["passed"] is False
    assert client.get("/admin/grading", params={"type": "project"}, headers=ha).json() == []

    bad = client.post("/admin/grading", json={
        "kind": "project", "submission_id": queue[0]["submission_id"], "score": 500,
    }, headers=ha)
    assert bad.status_code == 400


def test_reorder_and_level_updates(client, admin, student):
    ids = build_course(client, admin)
    ha = auth_headers(admin)

    path = f"/admin/courses/{ids['course']}/modules/reorder"
    reordered = client.post(path, json={"ordered_ids": [ids["m2"], ids["m1"]]}, headers=ha).json()
    assert reordered == [
        {"id": ids["m2"], "sequence_order": 1},
        {"id": ids["m1"], "sequence_order": 2},
    ]
    assert client.post(path, json={"ordered_ids": [ids["m1"]]}, headers=ha).status_code == 400

    clash = client.post(f"/admin/courses/{ids['course']}/modules", json={"name": "X", "sequence_order": 1}, headers=ha)
    assert clash.status_code == 400

    level_path = f"/admin/students/{student.id}/level"
    assert client.put(level_path, json={"level": "M1"}, headers=ha).json()["level"] == "M1"
    assert client.put(level_path, json={"level": "Z9"}, headers=ha).status_code == 400


def test_course_catalogue_reorder(client, admin, student):
    ha = auth_headers(admin)
    first = create(client, ha, "/admin/courses", {"name": "Python"})
    second = create(client, ha, "/admin/courses", {"name": "SQL"})

    reordered = client.post("/admin/courses/reorder", json={"ordered_ids": [second, first]}, headers=ha)
    assert reordered.status_code == 200
    assert [item["id"] for item in reordered.json()] == [second, first]

    catalogue = client.get("/courses", headers=auth_headers(student)).json()
    assert [c["name"] for c in catalogue] == ["SQL", "Python"]

    partial = client.post("/admin/courses/reorder", json={"ordered_ids": [first]}, headers=ha)
    assert partial.status_code == 400
