import pytest
from dbcopy.errors import SequenceInvariantError, SchemaError
from dbcopy.text.sequencer import (
    NULL_TOKEN, null_if_none, none_if_null, ordered_pairs,
    RowSequence, TwoLevelSequence, ThreeLevelSequence,
)


def test_row_sequence():
    rows = list(RowSequence([1, 2, 3], lambda x: [str(x)]))
    assert rows == [["1"], ["2"], ["3"]]

def test_row_sequence_empty():
    assert list(RowSequence([], lambda x: [str(x)])) == []

def test_two_level_skips_empty_children():
    parents = [
        ("a", []),
        ("b", [1, 2]),
        ("c", []),
        ("d", [3]),
        ("e", []),
    ]
    seq = TwoLevelSequence(parents, lambda p: p[1], lambda p, c: [p[0], str(c)])
    assert list(seq) == [["b", "1"], ["b", "2"], ["d", "3"]]

def test_two_level_all_children_empty():
    parents = [("a", []), ("b", []), ("c", [])]
    seq = TwoLevelSequence(parents, lambda p: p[1], lambda p, c: [p[0], str(c)])
    assert list(seq) == []
    # exhausted sequence stays exhausted
    with pytest.raises(StopIteration):
        next(seq)

def test_two_level_cursors():
    seq = TwoLevelSequence([[10, 11], [12]], lambda p: p, lambda p, c: [str(c)])
    assert next(seq) == ["10"]
    assert (seq.outer, seq.inner) == (0, 1)
    assert next(seq) == ["11"]
    assert next(seq) == ["12"]
    assert seq.outer == 1

def test_three_level_termination():
    runs = [
        {"id": 1, "params": [{"name": "A", "txt": []}, {"name": "B", "txt": ["EN", "FR"]}]},
        {"id": 2, "params": []},
        {"id": 3, "params": [{"name": "C", "txt": []}]},
        {"id": 4, "params": [{"name": "D", "txt": ["EN"]}]},
    ]
    seq = ThreeLevelSequence(
        runs,
        lambda r: r["params"],
        lambda p: p["txt"],
        lambda r, p, t: [str(r["id"]), p["name"], t],
    )
    assert list(seq) == [["1", "B", "EN"], ["1", "B", "FR"], ["4", "D", "EN"]]

def test_three_level_no_grandchildren():
    runs = [{"params": [{"txt": []}, {"txt": []}]}, {"params": [{"txt": []}]}]
    seq = ThreeLevelSequence(runs, lambda r: r["params"], lambda p: p["txt"], lambda r, p, t: [t])
    assert list(seq) == []

def test_none_child_list_is_invariant_error():
    seq = TwoLevelSequence([("a", None)], lambda p: p[1], lambda p, c: [str(c)])
    with pytest.raises(SequenceInvariantError) as e:
        list(seq)
    assert isinstance(e.value, SchemaError)

def test_none_parent_list_is_invariant_error():
    with pytest.raises(SequenceInvariantError):
        TwoLevelSequence(None, lambda p: p, lambda p, c: [])

def test_null_fidelity():
    assert null_if_none(None) == NULL_TOKEN
    assert null_if_none("") == ""
    assert null_if_none("note") == "note"
    assert null_if_none(True) == "1"
    assert null_if_none(12) == "12"
    assert none_if_null(NULL_TOKEN) is None
    assert none_if_null("") == ""

def test_empty_and_absent_notes_differ():
    notes = [("EN", ""), ("FR", None)]
    rows = list(RowSequence(notes, lambda n: [n[0], null_if_none(n[1])]))
    assert rows == [["EN", ""], ["FR", "NULL"]]
    assert [none_if_null(r[1]) for r in rows] == ["", None]

def test_ordered_pairs():
    assert ordered_pairs({"b": "2", "a": "1", "c": None}) == [("a", "1"), ("b", "2"), ("c", None)]
    assert ordered_pairs(None) == []
    assert ordered_pairs({}) == []
