import pytest

from havenmap.geo.gazetteer import Gazetteer, load_gazetteer
from havenmap.geo.models import Coordinate, GazetteerEntry


def test_builtin_table_keeps_declaration_order():
    gazetteer = Gazetteer.default()
    names = [entry.name for entry in gazetteer]
    assert names[0] == "Torquay"
    assert names[-1] == "Melbourne"
    assert len(gazetteer) == 16


def test_lookup_is_two_way_substring_and_case_insensitive():
    gazetteer = Gazetteer.default()
    assert gazetteer.lookup("  TORQUAY ").name == "Torquay"
    assert gazetteer.lookup("Ocean Grove VIC 3226").name == "Ocean Grove"
    assert gazetteer.lookup("lonsdale").name == "Point Lonsdale"
    assert gazetteer.lookup("Atlantis") is None
    assert gazetteer.lookup("   ") is None


def test_first_declared_match_wins():
    gazetteer = Gazetteer(
        [
            GazetteerEntry("Grove", Coordinate(lat=1.0, lng=1.0)),
            GazetteerEntry("Ocean Grove", Coordinate(lat=2.0, lng=2.0)),
        ]
    )
    assert gazetteer.lookup("Ocean Grove").name == "Grove"


def test_get_is_exact():
    gazetteer = Gazetteer.default()
    assert gazetteer.get("geelong") == Coordinate(lat=-38.1499, lng=144.3580)
    assert gazetteer.get("geel") is None


def test_load_gazetteer_from_yaml(tmp_path):
    path = tmp_path / "places.yaml"
    path.write_text(
        "places:\n"
        "  - {name: Jan Juc, lat: -38.3470, lng: 144.3010}\n"
        "  - {name: Torquay, lat: -38.3305, lng: 144.3256}\n",
        encoding="utf-8",
    )
    gazetteer = load_gazetteer(path)
    assert [entry.name for entry in gazetteer] == ["Jan Juc", "Torquay"]
    assert gazetteer.lookup("jan juc").coordinate.lat == pytest.approx(-38.3470)


def test_load_gazetteer_missing_file_uses_builtin(tmp_path):
    assert len(load_gazetteer(tmp_path / "absent.yaml")) == len(Gazetteer.default())
    assert len(load_gazetteer(None)) == len(Gazetteer.default())


def test_load_gazetteer_rejects_bad_rows(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("places:\n  - {name: Nowhere, lat: 123.0, lng: 0}\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_gazetteer(path)
    path.write_text("towns: []\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_gazetteer(path)
