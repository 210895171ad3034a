import math

import pytest

from fleet_dispatch.services.geospatial import (
    cumulative_distances,
    distance,
    haversine_m,
    polyline_length,
    position_at_distance,
)

POINTS = [(59.70, 10.80), (59.71, 10.82), (59.72, 10.84)]


def test_haversine_matches_one_degree_on_equator():
    expected = 2 * math.pi * 6371000.0 / 360
    assert haversine_m(0.0, 0.0, 0.0, 1.0) == pytest.approx(expected, rel=1e-9)
    assert distance((0.0, 0.0), (1.0, 0.0)) == pytest.approx(expected, rel=1e-9)


def test_haversine_is_symmetric_and_zero_on_same_point():
    a, b = (59.9139, 10.7522), (59.7195, 10.8350)
    assert distance(a, b) == pytest.approx(distance(b, a))
    assert distance(a, a) == 0.0


def test_cumulative_distances_table():
    table = cumulative_distances(POINTS)

    assert len(table) == len(POINTS)
    assert table[0] == 0.0
    assert table[1] == pytest.approx(distance(POINTS[0], POINTS[1]))
    assert table[2] == pytest.approx(table[1] + distance(POINTS[1], POINTS[2]))
    assert table == sorted(table)
    assert cumulative_distances([]) == []
    assert polyline_length(table) == table[-1]
    assert polyline_length([]) == 0.0


def test_position_clamps_to_endpoints():
    table = cumulative_distances(POINTS)

    assert position_at_distance(POINTS, table, -5.0) == POINTS[0]
    assert position_at_distance(POINTS, table, 0.0) == POINTS[0]
    assert position_at_distance(POINTS, table, table[-1]) == POINTS[-1]
    assert position_at_distance(POINTS, table, table[-1] + 1000.0) == POINTS[-1]


def test_position_interpolates_inside_second_segment():
    table = cumulative_distances(POINTS)
    segment = table[2] - table[1]

    lat, lng = position_at_distance(POINTS, table, table[1] + 0.25 * segment)

    assert lat == pytest.approx(59.71 + 0.25 * 0.01)
    assert lng == pytest.approx(10.82 + 0.25 * 0.02)


def test_half_of_total_length_lands_at_fractional_offset_of_bracketing_segment():
    table = cumulative_distances(POINTS)
    half = table[-1] / 2

    index = next(i for i in range(1, len(table)) if table[i] >= half)
    fraction = (half - table[index - 1]) / (table[index] - table[index - 1])
    start, end = POINTS[index - 1], POINTS[index]
    expected = (start[0] + (end[0] - start[0]) * fraction, start[1] + (end[1] - start[1]) * fraction)

    position = position_at_distance(POINTS, table, half)

    assert position == pytest.approx(expected)
    # both legs are almost equally long, so half way is next to the middle vertex
    assert distance(position, POINTS[1]) < 5.0


def test_position_is_monotonic_along_route():
    table = cumulative_distances(POINTS)
    traveled = [table[-1] * step / 50 for step in range(51)]
    progress = [distance(POINTS[0], position_at_distance(POINTS, table, d)) for d in traveled]

    assert progress == sorted(progress)


def test_zero_length_segments_are_skipped():
    points = [(59.70, 10.80), (59.70, 10.80), (59.71, 10.80)]
    table = cumulative_distances(points)

    lat, lng = position_at_distance(points, table, table[-1] / 2)

    assert lat == pytest.approx(59.705)
    assert lng == pytest.approx(10.80)


def test_position_rejects_mismatched_table():
    with pytest.raises(ValueError):
        position_at_distance(POINTS, [0.0], 10.0)
    with pytest.raises(ValueError):
        position_at_distance([], [], 10.0)
