"""Class and subject positions using standard competition ranking."""

from grading import round_half_up
from records import RankedEntry


def same_score(a, b):
    return abs(float(a or 0) - float(b or 0)) <= 1e-9


def assign_positions(items, score_of):
    """
    Rank items by score descending and return (position, item) pairs.

    Ties share a position and the next distinct score skips ahead by the size
    of the tie group (90, 90, 80 -> 1, 1, 3). Equal scores keep input order.
    """
    ordered = sorted(items, key=lambda item: float(score_of(item) or 0), reverse=True)
    ranked = []
    prev_score = None
    current_pos = 0
    for index, item in enumerate(ordered, 1):
        score = float(score_of(item) or 0)
        if prev_score is None or not same_score(score, prev_score):
            current_pos = index
        ranked.append((current_pos, item))
        prev_score = score
    return ranked


def rank(entries):
    """Rank [{'id', 'score'}] mappings; returns new dicts with a position."""
    return [
        {'id': entry['id'], 'score': entry['score'], 'position': pos}
        for pos, entry in assign_positions(list(entries), lambda e: e['score'])
    ]


def _group_key(result):
    return (result.class_id, result.subject_id, result.term, result.session)


def rank_results(results):
    """Subject positions: rank ComputedResults within class+subject+term+session."""
    groups = {}
    for result in results:
        groups.setdefault(_group_key(result), []).append(result)

    ranked = []
    for group_results in groups.values():
        size = len(group_results)
        for pos, result in assign_positions(group_results, lambda r: r.total_score):
            ranked.append(RankedEntry(result=result, position=pos, group_size=size))
    return ranked


def class_positions(results):
    """
    Overall class positions per class+term+session.

    A student's score is the rounded mean of their subject totals in the
    group. Returns {(group, student_id): {'pos', 'size', 'average', 'group'}}.
    """
    totals = {}
    for result in results:
        group = (result.class_id, result.term, result.session)
        totals.setdefault(group, {}).setdefault(result.student_id, []).append(result.total_score)

    positions = {}
    for group, by_student in totals.items():
        averages = [
            (sid, round_half_up(sum(scores) / len(scores)))
            for sid, scores in by_student.items()
        ]
        for pos, (sid, average) in assign_positions(averages, lambda x: x[1]):
            positions[(group, sid)] = {
                'pos': pos,
                'size': len(averages),
                'average': average,
                'group': group,
            }
    return positions


def subject_positions_for_student(results, student_id, term, session):
    """Build subject-by-subject class position for one student."""
    mine = [
        r for r in results
        if r.student_id == student_id and r.term == term and r.session == session
    ]
    if not mine:
        return {}
    class_ids = {r.class_id for r in mine}
    peers = [
        r for r in results
        if r.class_id in class_ids and r.term == term and r.session == session
    ]
    subject_positions = {}
    for entry in rank_results(peers):
        if entry.result.student_id == student_id:
            subject_positions[entry.result.subject_id] = {'pos': entry.position, 'size': entry.group_size}
    return subject_positions
