from conftest import MUSEUM, at, fixed_item, flexible_item

from dayplan.gaps import find_gaps, partition_gaps


def _spans(gaps):
    return [(g.start_time, g.end_time) for g in gaps]


def test_no_items_yields_whole_remaining_day():
    gaps = find_gaps([], at(8), at(22))
    assert _spans(gaps) == [(at(8), at(22))]
    assert gaps[0].previous_anchor is None and gaps[0].next_anchor is None


def test_no_items_and_too_little_time_left():
    assert find_gaps([], at(21, 45), at(22)) == []


def test_short_gap_between_fixed_items_is_skipped():
    a = fixed_item("A", at(9), at(10))
    b = fixed_item("B", at(10, 10), at(11), MUSEUM)
    gaps = find_gaps([a, b], at(8), at(22))
    assert _spans(gaps) == [(at(11), at(22)), (at(8), at(9))]
    assert all(g.start_time != at(10) for g in gaps)
    assert gaps[0].previous_anchor is b and gaps[0].next_anchor is None
    assert gaps[1].previous_anchor is None and gaps[1].next_anchor is a


def test_gaps_sorted_largest_first_then_by_start():
    items = [
        fixed_item("A", at(9), at(10)),
        fixed_item("B", at(11), at(12)),
        fixed_item("C", at(13), at(21)),
    ]
    gaps = find_gaps(items, at(8), at(22))
    assert _spans(gaps) == [(at(8), at(9)), (at(10), at(11)), (at(12), at(13)), (at(21), at(22))]


def test_nested_item_does_not_open_a_gap():
    outer = fixed_item("outer", at(9), at(12))
    inner = fixed_item("inner", at(10), at(11))
    later = fixed_item("later", at(13), at(14))
    gaps = find_gaps([later, inner, outer], at(8), at(22))
    assert (at(11), at(13)) not in _spans(gaps)
    middle = [g for g in gaps if g.start_time == at(12)][0]
    assert middle.previous_anchor is outer and middle.next_anchor is later


def test_unbound_items_are_ignored_and_input_untouched():
    a = fixed_item("A", at(9), at(10))
    pending = flexible_item("X")
    items = [pending, a]
    gaps = find_gaps(items, at(8), at(12))
    assert items == [pending, a]
    assert _spans(gaps) == [(at(10), at(12)), (at(8), at(9))]


def test_partition_gaps_by_anchor_kind():
    a = fixed_item("A", at(9), at(10))
    b = fixed_item("B", at(12), at(13))
    gaps = find_gaps([a, b], at(8), at(22))
    between, other = partition_gaps(gaps)
    assert _spans(between) == [(at(10), at(12))]
    assert between[0].between_fixed
    assert len(other) == 2 and not any(g.between_fixed for g in other)
