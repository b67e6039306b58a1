import importlib

import pytest

from store import ResultStore

SESSION = "2024/2025"


@pytest.fixture
def app_module(monkeypatch, tmp_path):
    monkeypatch.setenv("SECRET_KEY", "x" * 40)
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "app.log"))
    monkeypatch.delenv("ALLOW_INSECURE_DEFAULTS", raising=False)

    import result_app

    return importlib.reload(result_app)


@pytest.fixture
def store():
    return ResultStore()


@pytest.fixture
def app(app_module, store):
    app = app_module.create_app(store)
    app.config["TESTING"] = True
    app.config["WTF_CSRF_ENABLED"] = False
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def post_score(client, student_id, subject_id, test1, test2, exam, term="First Term", class_id="JSS1"):
    return client.post("/results", data={
        "student_id": student_id,
        "subject_id": subject_id,
        "class_id": class_id,
        "term": term,
        "session": SESSION,
        "test1": str(test1),
        "test2": str(test2),
        "exam": str(exam),
    })


@pytest.fixture
def seeded(client):
    for sid, name, adm in (("S1", "Ada Obi", "GRA/001"), ("S2", "Bola Ade", "GRA/002")):
        resp = client.post("/students", data={"id": sid, "name": name, "admission_number": adm, "class_id": "JSS1"})
        assert resp.status_code == 201
    for subject_id, code, name in (("math", "math", "Mathematics"), ("eng", "ENG", "English Language")):
        resp = client.post("/subjects", data={"id": subject_id, "code": code, "name": name})
        assert resp.status_code == 201
    post_score(client, "S1", "math", 18, 17, 52)
    post_score(client, "S1", "eng", 10, 10, 30)
    post_score(client, "S2", "math", 15, 15, 40)
    post_score(client, "S2", "eng", 15, 15, 45)
    return client


def test_missing_secret_key_fails_fast(app_module, monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(RuntimeError):
        app_module.load_secret_key()


def test_short_secret_key_rejected_without_insecure_defaults(app_module, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "short")
    with pytest.raises(RuntimeError):
        app_module.load_secret_key()


@pytest.mark.parametrize("value,expected", [(1, "1st"), (2, "2nd"), (3, "3rd"), (4, "4th"), (11, "11th"), (12, "12th"), (13, "13th"), (21, "21st"), (112, "112th")])
def test_ordinal(app_module, value, expected):
    assert app_module.ordinal(value) == expected


def test_grading_scale_route(client):
    resp = client.get("/grading-scale")
    assert resp.status_code == 200
    bands = resp.get_json()
    assert [b["grade"] for b in bands] == ["A", "B", "C", "D", "E", "F"]
    assert bands[0] == {"grade": "A", "min": 80, "max": 100, "point": 5, "description": "Excellent"}


def test_compute_route_returns_total_and_grade(client):
    resp = client.post("/results/compute", data={"test1": "18", "test2": "17", "exam": "52"})
    assert resp.status_code == 200
    assert resp.get_json() == {"total": 87, "grade": "A", "point": 5, "description": "Excellent"}


def test_compute_route_rejects_out_of_range_components(client):
    resp = client.post("/results/compute", data={"test1": "25", "test2": "17", "exam": "52"})
    assert resp.status_code == 400
    assert "test1" in resp.get_json()["fields"]


def test_compute_route_rejects_non_finite_scores(client):
    resp = client.post("/results/compute", data={"test1": "nan", "test2": "17", "exam": "52"})
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_save_result_route_stores_draft(client, store):
    resp = post_score(client, "S1", "math", 18, 17, 52, term="first")
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["term"] == "First Term"
    assert data["total_score"] == 87
    assert data["status"] == "draft"
    assert len(store.results()) == 1


def test_save_result_route_rejects_unknown_term(client, store):
    resp = post_score(client, "S1", "math", 18, 17, 52, term="Fifth Term")
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "term"
    assert store.results() == []


def test_status_route_walks_lifecycle_and_locks(client):
    post_score(client, "S1", "math", 18, 17, 52)
    form = {"student_id": "S1", "subject_id": "math", "term": "First Term", "session": SESSION}

    resp = client.post("/results/status", data=dict(form, status="approved"))
    assert resp.status_code == 409

    for status in ("submitted", "approved"):
        resp = client.post("/results/status", data=dict(form, status=status))
        assert resp.status_code == 200
        assert resp.get_json()["status"] == status

    resp = post_score(client, "S1", "math", 1, 1, 1)
    assert resp.status_code == 409


def test_status_route_unknown_result(client):
    resp = client.post("/results/status", data={
        "student_id": "S9", "subject_id": "math", "term": "First Term", "session": SESSION, "status": "submitted",
    })
    assert resp.status_code == 404


def test_status_route_rejects_unknown_status(client):
    post_score(client, "S1", "math", 18, 17, 52)
    resp = client.post("/results/status", data={
        "student_id": "S1", "subject_id": "math", "term": "First Term", "session": SESSION, "status": "archived",
    })
    assert resp.status_code == 400
    assert "status" in resp.get_json()["fields"]


def test_rankings_route(seeded):
    resp = seeded.get(f"/classes/JSS1/rankings?subject_id=math&session={SESSION}")
    assert resp.status_code == 200
    rows = resp.get_json()
    assert [(r["student_id"], r["position"], r["position_label"]) for r in rows] == [("S1", 1, "1st"), ("S2", 2, "2nd")]
    assert rows[0]["group_size"] == 2


def test_broadsheet_route(seeded):
    resp = seeded.get(f"/classes/JSS1/broadsheet?session={SESSION}")
    assert resp.status_code == 200
    rows = resp.get_json()
    assert [r["student_id"] for r in rows] == ["S2", "S1"]
    assert rows[0]["cumulative_scores"] == {"MATH": 70, "ENG": 75}
    assert rows[0]["total_average"] == 73
    assert rows[0]["position_label"] == "1st"
    assert rows[1]["total_average"] == 69
    assert rows[1]["grade"] == "C"
    assert rows[1]["remark"] == "Good performance with room for improvement."

    resp = seeded.get(f"/classes/JSS1/broadsheet?session={SESSION}&q=ada")
    assert [r["student_id"] for r in resp.get_json()] == ["S1"]


def test_broadsheet_route_requires_session(seeded):
    resp = seeded.get("/classes/JSS1/broadsheet")
    assert resp.status_code == 400


def test_subject_analytics_route(seeded):
    resp = seeded.get(f"/classes/JSS1/broadsheet/subjects/math?session={SESSION}")
    assert resp.status_code == 200
    stats = resp.get_json()
    assert stats["highest_score"] == 87
    assert stats["lowest_score"] == 70
    assert stats["average_score"] == 79

    resp = seeded.get(f"/classes/JSS1/broadsheet/subjects/bio?session={SESSION}")
    assert resp.status_code == 404


def test_report_card_route(seeded):
    resp = seeded.get(f"/students/S1/report-card?term=first&session={SESSION}")
    assert resp.status_code == 200
    card = resp.get_json()
    assert card["average"] == 69
    assert card["grade"] == "C"
    assert card["position"] == "2nd"
    assert card["class_size"] == 2
    assert card["gpa"] == 3.5
    assert card["performance"]["level"] == "Very Good"
    subjects = {s["subject_id"]: s for s in card["subjects"]}
    assert subjects["math"]["position"] == "1st"
    assert subjects["math"]["remark"] == "Excellent"
    assert subjects["eng"]["position"] == "2nd"
    assert subjects["eng"]["status"] == "Pass"


def test_report_card_route_unknown_student(seeded):
    resp = seeded.get(f"/students/S9/report-card?term=first&session={SESSION}")
    assert resp.status_code == 404
