# tests/test_cache_admin.py


def _warm(client):
    client.post("/api/profiles", json={"username": "ann_lee", "displayName": "Ann"}, headers={"X-User-Id": "u1"})
    client.get("/api/profiles")
    client.get("/api/profiles?q=ann")
    client.get("/api/profiles")


def test_stats_snapshot(client):
    _warm(client)
    res = client.get("/cache/stats")
    assert res.status_code == 200
    body = res.json()
    assert body["keyCount"] == 2
    assert body["hits"] == 1
    assert body["misses"] == 2
    assert set(body) == {"keyCount", "hits", "misses", "approximateKeySize", "approximateValueSize"}


def test_invalidate_by_pattern(client):
    _warm(client)
    res = client.post("/cache/invalidate", json={"pattern": r"\?q="})
    assert res.json() == {"invalidated": 1}
    assert client.get("/api/profiles").headers["X-Cache"] == "HIT"


def test_invalid_pattern_is_400(client):
    res = client.post("/cache/invalidate", json={"pattern": "(oops"})
    assert res.status_code == 400


def test_clear_flushes_everything(client):
    _warm(client)
    assert client.delete("/cache").json() == {"cleared": 2}
    assert client.get("/cache/stats").json()["keyCount"] == 0
