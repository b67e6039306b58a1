from records import ComputedResult
from ranking import assign_positions, class_positions, rank, rank_results, subject_positions_for_student


def result(student_id, subject_id, total, class_id="JSS1", term="First Term", session="2024/2025"):
    return ComputedResult(
        student_id=student_id,
        subject_id=subject_id,
        class_id=class_id,
        term=term,
        session=session,
        total_score=total,
        grade="A",
    )


def test_rank_ties_share_position_and_skip():
    ranked = rank([{"id": 1, "score": 90}, {"id": 2, "score": 90}, {"id": 3, "score": 80}])
    assert [r["position"] for r in ranked] == [1, 1, 3]
    assert [r["id"] for r in ranked] == [1, 2, 3]


def test_rank_empty_input():
    assert rank([]) == []


def test_rank_keeps_input_order_for_equal_scores():
    entries = [{"id": "a", "score": 70}, {"id": "b", "score": 90}, {"id": "c", "score": 70}]
    ranked = rank(entries)
    assert ranked == [
        {"id": "b", "score": 90, "position": 1},
        {"id": "a", "score": 70, "position": 2},
        {"id": "c", "score": 70, "position": 2},
    ]
    assert "position" not in entries[0]


def test_rank_larger_tie_group():
    ranked = rank([{"id": i, "score": s} for i, s in enumerate([100, 90, 90, 90, 80])])
    assert [r["position"] for r in ranked] == [1, 2, 2, 2, 5]


def test_assign_positions_treats_near_equal_floats_as_ties():
    ranked = assign_positions([0.1 + 0.2, 0.3, 0.2], lambda x: x)
    assert [pos for pos, _ in ranked] == [1, 1, 3]


def test_rank_results_groups_by_class_subject_term_session():
    results = [
        result("S1", "math", 80),
        result("S2", "math", 90),
        result("S1", "eng", 70),
        result("S2", "eng", 70),
        result("S3", "math", 95, class_id="JSS2"),
    ]
    ranked = {(e.result.student_id, e.result.subject_id, e.result.class_id): e for e in rank_results(results)}
    assert ranked[("S2", "math", "JSS1")].position == 1
    assert ranked[("S1", "math", "JSS1")].position == 2
    assert ranked[("S1", "math", "JSS1")].group_size == 2
    assert ranked[("S1", "eng", "JSS1")].position == 1
    assert ranked[("S2", "eng", "JSS1")].position == 1
    assert ranked[("S3", "math", "JSS2")].position == 1
    assert ranked[("S3", "math", "JSS2")].group_size == 1
    assert ranked[("S2", "math", "JSS1")].to_dict()["position"] == 1


def test_class_positions_rank_by_rounded_average():
    results = [
        result("S1", "math", 87),
        result("S1", "eng", 50),
        result("S2", "math", 70),
        result("S2", "eng", 75),
        result("S3", "math", 69),
    ]
    positions = class_positions(results)
    group = ("JSS1", "First Term", "2024/2025")
    assert positions[(group, "S2")] == {"pos": 1, "size": 3, "average": 73, "group": group}
    assert positions[(group, "S1")]["average"] == 69
    assert positions[(group, "S1")]["pos"] == 2
    assert positions[(group, "S3")]["pos"] == 2


def test_subject_positions_for_student():
    results = [
        result("S1", "math", 87),
        result("S1", "eng", 50),
        result("S2", "math", 70),
        result("S2", "eng", 75),
        result("S2", "math", 99, term="Second Term"),
    ]
    assert subject_positions_for_student(results, "S1", "First Term", "2024/2025") == {
        "math": {"pos": 1, "size": 2},
        "eng": {"pos": 2, "size": 2},
    }
    assert subject_positions_for_student(results, "S9", "First Term", "2024/2025") == {}
