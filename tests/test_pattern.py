import pytest

from sfacut import (
    GridGraph,
    InvalidPattern,
    Pattern,
    PatternEnumerator,
    canonical_form,
    enumerate_patterns,
    grid_symmetries,
)
from sfacut.pattern import DEAD_LABEL, ORIENTATIONS


def test_symmetry_group_of_square_grid():
    names = [s.name for s in grid_symmetries(GridGraph.build(4, 4))]
    assert names[0] == "identity"
    assert len(names) == 8


def test_symmetry_group_of_rectangular_grid():
    names = [s.name for s in grid_symmetries(GridGraph.build(4, 3))]
    assert names == ["identity", "flip_rows", "flip_columns", "rotate_180"]


def test_defects_break_symmetries():
    grid = GridGraph.build(4, 4, unused_qubits=[(0, 0)])
    names = [s.name for s in grid_symmetries(grid)]
    assert names == ["identity", "transpose"]


def test_symmetries_are_permutations():
    grid = GridGraph.build(4, 4)
    for symmetry in grid_symmetries(grid):
        assert sorted(symmetry.permutation) == list(range(grid.coupler_count))


def test_rows_orientation_follows_order():
    grid = GridGraph.build(5, 4)
    pattern = PatternEnumerator(grid, "ABCD").project(0, 0, "rows")
    for edge in grid.edges:
        row, col = grid.coordinate(grid.endpoints(edge)[0])
        expected = "ABCD"[(col if grid.is_horizontal(edge) else row) % 4]
        assert pattern.label(edge) == expected


def test_phases_shift_each_direction_independently():
    grid = GridGraph.build(4, 4)
    enumerator = PatternEnumerator(grid, "ABC")
    base = enumerator.project(0, 0, "columns")
    shifted = enumerator.project(1, 0, "columns")
    for edge in grid.edges:
        if grid.is_horizontal(edge):
            assert "ABC".index(shifted.label(edge)) == ("ABC".index(base.label(edge)) + 1) % 3
        else:
            assert shifted.label(edge) == base.label(edge)


def test_origin_convention_shifts_the_projection():
    order = "ABCD"
    zero = PatternEnumerator(GridGraph.build(4, 4), order)
    one = PatternEnumerator(GridGraph.build(4, 4, qubit_at_origin=False), order)
    assert one.project(0, 0, "rows").labels == zero.project(1, 1, "rows").labels


def test_dead_couplers_carry_no_label():
    grid = GridGraph.build(3, 3, unused_couplers=[((1, 1), (1, 2))])
    dead = grid.coupler_id(4, 5)
    for pattern in PatternEnumerator(grid, "AB"):
        assert pattern.labels[dead] == DEAD_LABEL
        assert all(pattern.labels[e] in "AB" for e in grid.edges)


def test_no_two_patterns_are_equivalent():
    grid = GridGraph.build(4, 4)
    enumerator = PatternEnumerator(grid, "ABCD")
    symmetries = grid_symmetries(grid)
    canonical = [canonical_form(p.labels, symmetries) for p in enumerator]
    assert len(canonical) == len(set(canonical))


def test_enumeration_is_exhaustive_up_to_symmetry():
    grid = GridGraph.build(4, 3)
    enumerator = PatternEnumerator(grid, "ABC")
    symmetries = grid_symmetries(grid)
    yielded = {canonical_form(p.labels, symmetries) for p in enumerator}
    for phase_h in range(3):
        for phase_v in range(3):
            for orientation in ORIENTATIONS:
                labels = enumerator.project(phase_h, phase_v, orientation).labels
                assert canonical_form(labels, symmetries) in yielded


def test_enumeration_is_restartable_and_deterministic():
    grid = GridGraph.build(4, 4)
    enumerator = enumerate_patterns(grid, "AB")
    first = list(enumerator)
    second = list(enumerator)
    assert first == second
    assert [p.key for p in first] == [p.key for p in second]
    assert first[0].key == (0, 0, "rows")


def test_max_patterns_caps_and_flags_truncation():
    grid = GridGraph.build(4, 4)
    full = list(PatternEnumerator(grid, "ABCD"))
    assert len(full) > 1

    capped = PatternEnumerator(grid, "ABCD", max_patterns=1)
    patterns = list(capped)
    assert patterns == full[:1]
    assert capped.truncated


def test_cap_equal_to_count_is_not_truncation():
    grid = GridGraph.build(4, 4)
    count = len(list(PatternEnumerator(grid, "AB")))
    enumerator = PatternEnumerator(grid, "AB", max_patterns=count)
    assert len(list(enumerator)) == count
    assert not enumerator.truncated


def test_explicit_patterns_are_validated_and_kept():
    grid = GridGraph.build(2, 2, unused_couplers=[((0, 0), (0, 1))])
    enumerator = PatternEnumerator(grid, "AB", patterns=["ABBA", "xBBA", "ABBA"])
    patterns = list(enumerator)
    # the dead coupler is relabelled and duplicates are not removed
    assert [p.labels for p in patterns] == ["-BBA", "-BBA", "-BBA"]


@pytest.mark.parametrize("labels", ["ABB", "ABBAA", "ABCA"])
def test_explicit_patterns_reject_bad_labels(labels):
    grid = GridGraph.build(2, 2)
    with pytest.raises(InvalidPattern) as excinfo:
        PatternEnumerator(grid, "AB", patterns=[labels])
    assert excinfo.value.field == "patterns"


def test_pattern_serialisation_and_render():
    grid = GridGraph.build(2, 2, unused_qubits=[(1, 1)])
    pattern = PatternEnumerator(grid, "AB").project(0, 1, "diagonal")
    assert Pattern.from_dict(pattern.to_dict()).key == pattern.key
    drawing = pattern.render(grid).splitlines()
    assert drawing[0] == f"o{pattern.labels[0]}o"
    assert drawing[2] == "o x"
