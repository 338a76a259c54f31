# tests/test_response_cache.py

import re
import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.testclient import TestClient

from app.identity import CallerIdentityMiddleware
from app.services.cache_backends import InProcessCache
from app.services.cache_keys import derive_key
from app.services.response_cache import InvalidPatternError, ResponseCache


def _profile_key(caller_id):
    return derive_key("GET", "/api/profiles/1", {}, caller_id)


@pytest.fixture
def cache(clock):
    return InProcessCache(max_entries=100, default_ttl_seconds=60, clock=clock)


@pytest.fixture
def response_cache(cache):
    return ResponseCache(cache, default_ttl_seconds=60)


@pytest.fixture
def calls():
    return {"profile": 0, "broken": 0, "drafts": 0, "items": 0}


@pytest.fixture
def client(response_cache, calls):
    """A small app with cached reads and invalidating writes over /api/profiles."""
    app = FastAPI()
    app.add_middleware(CallerIdentityMiddleware)

    @app.get("/api/profiles/{profile_id}")
    @response_cache.cached()
    def read_profile(profile_id: int, request: Request):
        calls["profile"] += 1
        if profile_id == 404:
            raise HTTPException(status_code=404, detail="Profile not found")
        return {"profile": profile_id}

    @app.get("/api/broken")
    @response_cache.cached(ttl_seconds=5)
    async def broken(request: Request):
        calls["broken"] += 1
        return JSONResponse(status_code=500, content={"error": "db down"})

    @app.get("/api/explode")
    @response_cache.cached()
    async def explode(request: Request):
        raise RuntimeError("boom")

    @app.get("/api/drafts")
    @response_cache.cached(should_cache=lambda req, res, payload: not payload.get("draft"))
    def drafts(request: Request, draft: bool = False):
        calls["drafts"] += 1
        return {"draft": draft}

    @app.post("/api/profiles/{profile_id}")
    @response_cache.invalidates(["/api/profiles"])
    def update_profile(profile_id: int, request: Request, fail: bool = False):
        if fail:
            return JSONResponse(status_code=422, content={"error": "bad input"})
        return {"updated": profile_id}

    @app.delete("/api/profiles/{profile_id}", status_code=204)
    @response_cache.invalidates(lambda req, res, payload: rf"/api/profiles/{req.path_params['profile_id']}:")
    def delete_profile(profile_id: int, request: Request):
        return Response(status_code=204)

    @app.get("/api/items/{item_id}")
    @response_cache.cached()
    def read_item(item_id: int, request: Request, response: Response):
        calls["items"] += 1
        response.headers["X-Item-Source"] = "db"
        if item_id == 404:
            response.status_code = 404
            return {"error": "missing"}
        return {"item": item_id}

    @app.post("/api/items/{item_id}")
    @response_cache.invalidates(["/api/items"])
    def update_item(item_id: int, request: Request, response: Response):
        if item_id == 409:
            response.status_code = 409
            return {"error": "conflict"}
        return {"updated": item_id}

    @app.get("/api/session")
    @response_cache.cached()
    async def session(request: Request):
        res = JSONResponse(content={"session": "ok"})
        res.set_cookie("a", "1")
        res.set_cookie("b", "2")
        return res

    @app.post("/api/settings")
    @response_cache.invalidates("/api/settings")
    def save_settings(request: Request):
        return {"saved": True}

    with TestClient(app) as c:
        yield c


def test_miss_then_hit_calls_handler_once(client, calls):
    first = client.get("/api/profiles/7")
    assert first.status_code == 200
    assert first.headers["X-Cache"] == "MISS"
    assert first.headers["X-Cache-Key"] == "GET:/api/profiles/7:{}:useranonymous"
    assert first.headers["X-Cache-TTL"] == "60"

    second = client.get("/api/profiles/7")
    assert second.status_code == 200
    assert second.headers["X-Cache"] == "HIT"
    assert second.headers["X-Cache-Key"] == "GET:/api/profiles/7:{}:useranonymous"
    assert second.json() == first.json() == {"profile": 7}
    assert calls["profile"] == 1


def test_entry_expires_after_ttl(client, calls, clock):
    client.get("/api/profiles/7")
    clock.advance(59)
    assert client.get("/api/profiles/7").headers["X-Cache"] == "HIT"
    clock.advance(2)
    assert client.get("/api/profiles/7").headers["X-Cache"] == "MISS"
    assert calls["profile"] == 2


def test_callers_are_cached_separately(client, calls):
    client.get("/api/profiles/7", headers={"X-User-Id": "42"})
    res = client.get("/api/profiles/7")
    assert res.headers["X-Cache"] == "MISS"
    assert calls["profile"] == 2


def test_query_string_is_part_of_the_key(client, calls):
    client.get("/api/profiles/7?view=full")
    assert client.get("/api/profiles/7?view=card").headers["X-Cache"] == "MISS"
    assert client.get("/api/profiles/7?view=full").headers["X-Cache"] == "HIT"
    assert calls["profile"] == 2


def test_server_errors_are_never_cached(client, calls, cache):
    for _ in range(2):
        res = client.get("/api/broken")
        assert res.status_code == 500
        assert res.headers["X-Cache"] == "MISS"
    assert calls["broken"] == 2
    assert cache.keys() == []


def test_http_exceptions_propagate_and_are_not_cached(client, calls, cache):
    assert client.get("/api/profiles/404").status_code == 404
    assert client.get("/api/profiles/404").status_code == 404
    assert calls["profile"] == 2
    assert cache.keys() == []


def test_unhandled_errors_propagate_unchanged(client):
    with pytest.raises(RuntimeError, match="boom"):
        client.get("/api/explode")


def test_should_cache_predicate_can_veto(client, calls):
    client.get("/api/drafts?draft=true")
    client.get("/api/drafts?draft=true")
    assert calls["drafts"] == 2

    client.get("/api/drafts")
    assert client.get("/api/drafts").headers["X-Cache"] == "HIT"
    assert calls["drafts"] == 3


def test_scenario_write_invalidates_route(client, calls):
    # GET -> MISS, repeat -> HIT, POST invalidates "/api/profiles", GET -> MISS again
    assert client.get("/api/profiles/7").headers["X-Cache"] == "MISS"
    hit = client.get("/api/profiles/7")
    assert hit.headers["X-Cache"] == "HIT"
    assert hit.json() == {"profile": 7}
    assert calls["profile"] == 1

    res = client.post("/api/profiles/7")
    assert res.status_code == 200
    assert res.json() == {"updated": 7}

    assert client.get("/api/profiles/7").headers["X-Cache"] == "MISS"
    assert calls["profile"] == 2


def test_failed_mutation_does_not_invalidate(client, cache):
    client.get("/api/profiles/7")
    res = client.post("/api/profiles/7?fail=true")
    assert res.status_code == 422
    assert res.json() == {"error": "bad input"}
    assert client.get("/api/profiles/7").headers["X-Cache"] == "HIT"


def test_dynamic_patterns_and_no_content_responses(client):
    client.get("/api/profiles/7")
    client.get("/api/profiles/8")

    res = client.delete("/api/profiles/7")
    assert res.status_code == 204

    assert client.get("/api/profiles/7").headers["X-Cache"] == "MISS"
    assert client.get("/api/profiles/8").headers["X-Cache"] == "HIT"


def test_mutation_always_invalidates_callers_own_entries(client):
    client.get("/api/profiles/1", headers={"X-User-Id": "42"})
    client.get("/api/profiles/1", headers={"X-User-Id": "420"})
    client.get("/api/profiles/1")

    # /api/settings does not cover profile keys, but caller 42's segment is always cleared
    client.post("/api/settings", headers={"X-User-Id": "42"})

    assert client.get("/api/profiles/1", headers={"X-User-Id": "42"}).headers["X-Cache"] == "MISS"
    assert client.get("/api/profiles/1", headers={"X-User-Id": "420"}).headers["X-Cache"] == "HIT"
    assert client.get("/api/profiles/1").headers["X-Cache"] == "HIT"


def test_status_set_on_injected_response_is_respected(client, calls, cache):
    res = client.get("/api/items/404")
    assert res.status_code == 404
    assert res.json() == {"error": "missing"}
    assert res.headers["X-Item-Source"] == "db"
    assert client.get("/api/items/404").status_code == 404
    assert calls["items"] == 2
    assert cache.keys() == []

    ok = client.get("/api/items/1")
    assert ok.status_code == 200
    assert ok.headers["X-Cache"] == "MISS"
    assert ok.headers["X-Item-Source"] == "db"
    assert client.get("/api/items/1").headers["X-Cache"] == "HIT"


def test_failure_set_on_injected_response_skips_invalidation(client):
    client.get("/api/items/1")

    res = client.post("/api/items/409")
    assert res.status_code == 409
    assert client.get("/api/items/1").headers["X-Cache"] == "HIT"

    assert client.post("/api/items/2").status_code == 200
    assert client.get("/api/items/1").headers["X-Cache"] == "MISS"


def test_repeated_headers_from_handler_response_survive(client):
    res = client.get("/api/session")
    assert res.headers["X-Cache"] == "MISS"
    cookies = res.headers.get_list("set-cookie")
    assert len(cookies) == 2
    assert cookies[0].startswith("a=1")
    assert cookies[1].startswith("b=2")


def test_invalidate_matches_by_regex_search(response_cache, cache):
    cache.set("GET:/api/profiles/1:{}:user42", {"a": 1})
    cache.set("GET:/api/profiles/2:{}:user7", {"b": 2})
    cache.set("GET:/api/themes:{}:user42", {"c": 3})

    assert response_cache.invalidate("user42") == 2
    assert cache.keys() == ["GET:/api/profiles/2:{}:user7"]
    assert cache.get("GET:/api/profiles/2:{}:user7") == {"b": 2}


def test_string_patterns_are_regular_expressions(response_cache, cache):
    cache.set("GET:/api/v1x0/items:{}:useranonymous", 1)
    # "." is a wildcard, not a literal dot
    assert response_cache.invalidate("/api/v1.0") == 1


def test_compiled_patterns_are_accepted(response_cache, cache):
    cache.set("GET:/API/Profiles:{}:useranonymous", 1)
    assert response_cache.invalidate(re.compile("/api/profiles", re.IGNORECASE)) == 1


def test_invalidate_user_is_anchored_on_caller_segment(response_cache, cache):
    cache.set("GET:/a:{}:user4", 1)
    cache.set("GET:/a:{}:user42", 2)
    assert response_cache.invalidate_user(4) == 1
    assert cache.keys() == ["GET:/a:{}:user42"]


def test_invalidate_user_ignores_callers_embedding_the_id(response_cache, cache):
    cache.set(_profile_key("x:userbob"), 1)
    cache.set(_profile_key("bob"), 2)
    assert response_cache.invalidate_user("bob") == 1
    assert cache.keys() == [_profile_key("x:userbob")]


def test_invalidate_route_matches_path_component(response_cache, cache):
    cache.set("GET:/api/profiles/1:{}:useranonymous", 1)
    cache.set("GET:/api/themes:{\"next\":\"/api/profiles\"}:useranonymous", 2)
    assert response_cache.invalidate_route("/api/profiles") == 1
    assert len(cache.keys()) == 1


def test_invalid_pattern_raises(response_cache):
    with pytest.raises(InvalidPatternError):
        response_cache.invalidate("(unclosed")


def test_invalid_static_pattern_fails_at_decoration(response_cache):
    with pytest.raises(InvalidPatternError):
        response_cache.invalidates(["[bad"])


def test_handler_without_request_parameter_is_rejected(response_cache):
    with pytest.raises(TypeError):
        @response_cache.cached()
        def handler(profile_id: int):
            return {}


def test_clear_and_stats(client, response_cache):
    client.get("/api/profiles/1")
    client.get("/api/profiles/1")
    client.get("/api/profiles/2")

    stats = response_cache.get_stats()
    assert stats.keyCount == 2
    assert stats.hits == 1
    assert stats.misses == 2
    assert stats.approximateKeySize > 0
    assert stats.approximateValueSize == 2 * len('{"profile":1}')

    assert response_cache.clear() == 2
    assert response_cache.get_stats().keyCount == 0
