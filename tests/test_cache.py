import orjson

from havenmap.geo.models import Coordinate
from havenmap.resolve.cache import ResolutionCache

TORQUAY = Coordinate(lat=-38.3305, lng=144.3256)


def test_cache_put_get_and_overwrite():
    cache = ResolutionCache()
    assert cache.get("torquay") is None
    cache.put("torquay", TORQUAY)
    cache.put("torquay", TORQUAY)
    assert cache.get("torquay") == TORQUAY
    assert len(cache) == 1
    assert list(cache) == ["torquay"]
    assert cache.save() is None


def test_cache_roundtrip_through_disk(tmp_path):
    path = tmp_path / "state" / "geocode.json"
    cache = ResolutionCache(path)
    cache.put("jan juc", Coordinate(lat=-38.3470, lng=144.3010))
    assert cache.save() == path

    reloaded = ResolutionCache(path)
    assert reloaded.get("jan juc") == Coordinate(lat=-38.3470, lng=144.3010)
    assert reloaded.snapshot() == cache.snapshot()


def test_cache_ignores_corrupt_or_foreign_files(tmp_path):
    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json", encoding="utf-8")
    assert len(ResolutionCache(corrupt)) == 0

    foreign = tmp_path / "foreign.json"
    foreign.write_bytes(orjson.dumps({"version": 99, "data": {"torquay": [-38.3, 144.3]}}))
    assert len(ResolutionCache(foreign)) == 0

    partial = tmp_path / "partial.json"
    partial.write_bytes(orjson.dumps({"version": 1, "data": {"ok": [-38.3, 144.3], "bad": [500, 0], "short": [1]}}))
    assert list(ResolutionCache(partial)) == ["ok"]

    listed = tmp_path / "listed.json"
    listed.write_bytes(orjson.dumps({"version": 1, "data": [["torquay", -38.3, 144.3]]}))
    assert len(ResolutionCache(listed)) == 0

    objects = tmp_path / "objects.json"
    objects.write_bytes(
        orjson.dumps({"version": 1, "data": {"torquay": {"lat": -38.3, "lng": 144.3}, "ok": [-38.3, 144.3]}})
    )
    assert list(ResolutionCache(objects)) == ["ok"]
