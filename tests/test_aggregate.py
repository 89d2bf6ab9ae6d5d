"""Tests for per-area folding and report-level numbers."""

import random

from conftest import make_record

from claim_triage.aggregate import (FEW_IMAGES_GAP, MINOR_NOTE, SEVERE_NOTE, aggregate_areas,
                                    data_gaps, placeholder_confidence, round_half_up,
                                    weighted_severity)


def test_quality_weighted_area_severity():
    reps = [make_record("a", severity=2, quality=1.0),
            make_record("b", severity=4, quality=0.6)]
    [area] = aggregate_areas(reps, "wind")
    # (2*1 + 4*0.6) / (1 + 0.6)
    assert area.avg_severity == 2.5
    assert area.notes == MINOR_NOTE


def test_severe_note_above_two_and_a_half():
    [area] = aggregate_areas([make_record("a", severity=3)], "wind")
    assert area.notes == SEVERE_NOTE


def test_damage_confirmed_needs_two_significant_images():
    reps = [make_record("a", severity=3), make_record("b", severity=1)]
    assert aggregate_areas(reps, "wind")[0].damage_confirmed is False

    reps.append(make_record("c", severity=2))
    assert aggregate_areas(reps, "wind")[0].damage_confirmed is True


def test_areas_keep_first_seen_order():
    reps = [make_record("1", area="siding"), make_record("2", area="roof"),
            make_record("3", area="siding")]
    areas = aggregate_areas(reps, "hail")
    assert [a.area for a in areas] == ["siding", "roof"]
    assert areas[0].representative_images == ["1", "3"]
    assert all(a.primary_peril == "hail" for a in areas)


def test_representative_images_capped():
    reps = [make_record(str(i)) for i in range(5)]
    [area] = aggregate_areas(reps, "wind")
    assert area.representative_images == ["0", "1", "2"]


def test_overall_severity_weights_every_representative():
    reps = [make_record("a", area="roof", severity=4, quality=1.0),
            make_record("b", area="roof", severity=4, quality=1.0),
            make_record("c", area="siding", severity=0, quality=1.0)]
    # mean of area means would be 2.0
    assert round(weighted_severity(reps), 2) == 2.67


def test_overall_severity_empty():
    assert weighted_severity([]) == 0.0


def test_data_gaps():
    assert data_gaps(2) == [FEW_IMAGES_GAP]
    assert data_gaps(3) == []
    assert data_gaps(0, min_analyzed=0) == []


def test_placeholder_confidence_range():
    rng = random.Random(7)
    for _ in range(200):
        value = placeholder_confidence(rng)
        assert 0.70 <= value <= 0.95
        assert value == round(value, 2)


def test_area_severity_ties_round_up():
    reps = [make_record(str(i), severity=s) for i, s in enumerate([2, 3, 2, 2])]
    # 9 / 4 = 2.25
    assert aggregate_areas(reps, "wind")[0].avg_severity == 2.3


def test_round_half_up():
    assert round_half_up(2.25) == 2.3
    assert round_half_up(2.35) == 2.4
    assert round_half_up(2.24) == 2.2
    assert round_half_up(0.0) == 0.0
    assert round_half_up(3.6666) == 3.7
