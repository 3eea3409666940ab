from dataclasses import dataclass

from envrisk.pipeline.dedupe import dedupe


@dataclass(frozen=True)
class Rec:
    name: str
    distance_miles: float
    source: str = "a"


def test_same_name_close_distance_keeps_first():
    first = Rec("Acme Chemical", 0.30, source="registry")
    second = Rec("Acme Chemical", 0.35, source="bulk")

    assert dedupe([first, second]) == [first]


def test_different_name_keeps_both():
    records = [Rec("Acme Chemical", 0.30), Rec("ACME CHEMICAL", 0.30)]
    assert dedupe(records) == records


def test_distance_delta_at_tolerance_keeps_both():
    records = [Rec("Acme", 1.0), Rec("Acme", 1.1)]
    assert dedupe(records) == records


def test_distance_delta_above_tolerance_keeps_both():
    records = [Rec("Acme", 1.0), Rec("Acme", 2.0)]
    assert dedupe(records) == records


def test_duplicate_compared_against_every_kept_record():
    records = [Rec("Acme", 1.0), Rec("Other", 1.0), Rec("Acme", 3.0), Rec("Acme", 2.95)]

    assert dedupe(records) == [Rec("Acme", 1.0), Rec("Other", 1.0), Rec("Acme", 3.0)]


def test_dedupe_is_pure_and_preserves_order():
    records = [Rec("B", 2.0), Rec("A", 1.0), Rec("B", 2.05)]
    snapshot = list(records)

    assert dedupe(records) == [Rec("B", 2.0), Rec("A", 1.0)]
    assert records == snapshot
    assert dedupe([]) == []
