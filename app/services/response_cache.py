# app/services/response_cache.py

import functools
import inspect
import json
import logging
import re
from typing import Any, Callable, List, Optional, Pattern, Sequence, Tuple, Union

from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import CACHE_TTL_SECONDS
from app.identity import caller_from_request
from app.schemas.cache import CacheStats
from app.services.cache import Cache
from app.services.cache_keys import caller_segment, derive_key, query_params_from, request_path

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Cache"
CACHE_KEY_HEADER = "X-Cache-Key"
CACHE_TTL_HEADER = "X-Cache-TTL"

PatternLike = Union[str, Pattern[str]]
PatternFn = Callable[[Request, Response, Any], Union[PatternLike, Sequence[PatternLike]]]
ShouldCacheFn = Callable[[Request, Response, Any], bool]


class InvalidPatternError(ValueError):
    """Raised when an invalidation pattern cannot be compiled as a regular expression."""


def compile_pattern(pattern: PatternLike) -> Pattern[str]:
    """
    Plain strings are compiled as regular expressions, not matched literally:
    "/api/v1.0" also matches "/api/v1x0".
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern)
    except re.error as ex:
        raise InvalidPatternError(f"invalid cache invalidation pattern {pattern!r}: {ex}") from ex


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _request_param(func: Callable) -> str:
    """Name of the handler parameter that receives the Starlette Request."""
    for name, param in inspect.signature(func).parameters.items():
        annotation = param.annotation
        if isinstance(annotation, type) and issubclass(annotation, Request):
            return name
        if name == "request":
            return name
    raise TypeError(f"{func.__qualname__} must declare a `request: Request` parameter to be cache-aware")


async def _call_handler(func: Callable, *args, **kwargs) -> Any:
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    # sync handlers (DB sessions etc.) stay off the event loop, as FastAPI would run them
    return await run_in_threadpool(func, *args, **kwargs)


def _response_param(func: Callable) -> Optional[str]:
    """Name of the injected `response: Response` parameter, if the handler declares one."""
    for name, param in inspect.signature(func).parameters.items():
        annotation = param.annotation
        if isinstance(annotation, type) and issubclass(annotation, Response):
            return name
    return None


def _route_status(request: Request) -> int:
    route = request.scope.get("route")
    return getattr(route, "status_code", None) or 200


def _unpack(request: Request, result: Any, sub_response: Optional[Response] = None) -> Tuple[int, Any]:
    """
    Normalize a handler's return value to (status_code, JSON payload).
    For plain return values a status set on the injected response wins over the route default.
    """
    if isinstance(result, JSONResponse):
        return result.status_code, json.loads(result.body) if result.body else None
    if isinstance(result, Response):
        return result.status_code, None
    if sub_response is not None and sub_response.status_code:
        return sub_response.status_code, jsonable_encoder(result)
    return _route_status(request), jsonable_encoder(result)


def _copy_headers(source: Response, target: Response) -> None:
    # raw pairs, so repeated headers such as Set-Cookie all survive
    target.raw_headers.extend(
        (name, value)
        for name, value in source.raw_headers
        if name.lower() not in (b"content-length", b"content-type")
    )


class ResponseCache:
    """
    Cache-aside layer for read handlers plus pattern-based invalidation for
    write handlers, on top of a single process-local `Cache` backend.

    One instance is built at application start (see `create_app`) and shared
    by every router through `app.state.response_cache`.

    Usage:
        @router.get("/{profile_id}")
        @response_cache.cached(ttl_seconds=30)
        def get_profile(profile_id: int, request: Request): ...

        @router.put("/{profile_id}")
        @response_cache.invalidates(["/api/profiles"])
        def update_profile(profile_id: int, request: Request): ...
    """

    def __init__(
        self,
        cache: Cache,
        default_ttl_seconds: int = CACHE_TTL_SECONDS,
        identify: Callable[[Request], Optional[Any]] = caller_from_request,
    ):
        self.cache = cache
        self.default_ttl_seconds = default_ttl_seconds
        self._identify = identify

    def key_for(self, request: Request) -> str:
        return derive_key(
            request.method,
            request_path(request),
            query_params_from(request),
            self._identify(request),
        )

    # ---- read path ----

    def cached(self, ttl_seconds: Optional[int] = None, should_cache: Optional[ShouldCacheFn] = None):
        """
        Serve GET responses from the cache; on a miss run the handler and store
        its payload when the status is 2xx and `should_cache` (if given) agrees.

        Exceptions raised by the handler propagate unchanged and are never cached.
        """
        def decorator(func: Callable):
            request_arg = _request_param(func)
            response_arg = _response_param(func)

            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                request: Request = kwargs[request_arg]
                if request.method != "GET":
                    return await _call_handler(func, *args, **kwargs)

                key = self.key_for(request)
                cached_payload = self.cache.get(key)
                if cached_payload is not None:
                    logger.debug("cache HIT %s", key)
                    return JSONResponse(
                        content=cached_payload,
                        headers={CACHE_HEADER: "HIT", CACHE_KEY_HEADER: key},
                    )

                logger.debug("cache MISS %s", key)
                result = await _call_handler(func, *args, **kwargs)

                if isinstance(result, Response) and not isinstance(result, JSONResponse):
                    # Not a JSON payload (streaming, files, empty bodies): pass through uncached
                    result.headers[CACHE_HEADER] = "MISS"
                    return result

                sub_response = kwargs.get(response_arg) if response_arg else None
                status_code, payload = _unpack(request, result, sub_response)
                response = JSONResponse(
                    content=payload,
                    status_code=status_code,
                    headers={CACHE_HEADER: "MISS"},
                )
                if isinstance(result, JSONResponse):
                    _copy_headers(result, response)
                elif sub_response is not None:
                    # FastAPI only merges the injected response into responses it builds itself
                    _copy_headers(sub_response, response)

                if payload is None or not _is_success(status_code):
                    return response
                if should_cache is not None and not should_cache(request, response, payload):
                    return response

                ttl = ttl_seconds or self.default_ttl_seconds
                if self.cache.set(key, payload, ttl):
                    logger.info("cache SET %s (ttl=%ss)", key, ttl)
                    response.headers[CACHE_KEY_HEADER] = key
                    response.headers[CACHE_TTL_HEADER] = str(ttl)
                return response

            return wrapper
        return decorator

    # ---- invalidation ----

    def invalidate(self, pattern: PatternLike) -> int:
        """Delete every key the pattern matches (regex search); returns the number removed."""
        regex = compile_pattern(pattern)
        removed = 0
        for key in self.cache.keys():
            if regex.search(key) and self.cache.delete(key):
                removed += 1
        logger.info("cache INVALIDATE pattern=%s removed=%d", regex.pattern, removed)
        return removed

    def invalidate_user(self, caller_id: Any) -> int:
        # Anchored on the trailing caller segment so user4 does not also clear user42
        return self.invalidate(re.escape(caller_segment(caller_id)) + "$")

    def invalidate_route(self, route_pattern: str) -> int:
        # Match against the path component only (right after METHOD:)
        return self.invalidate(f"^[A-Z]+:{route_pattern}")

    def clear(self) -> int:
        count = self.cache.flush()
        logger.info("cache CLEAR all %d keys deleted", count)
        return count

    def get_stats(self) -> CacheStats:
        stats = self.cache.stats()
        return CacheStats(
            keyCount=stats["keys"],
            hits=stats["hits"],
            misses=stats["misses"],
            approximateKeySize=stats["ksize"],
            approximateValueSize=stats["vsize"],
        )

    # ---- write path ----

    def invalidates(self, patterns: Union[PatternLike, Sequence[PatternLike], PatternFn]):
        """
        After a successful (2xx) mutation, invalidate `patterns` and the caller's own
        cache segment. `patterns` is a pattern, a list of patterns, or a callable
        `(request, response, payload) -> pattern | list` evaluated per request.

        The handler's result is returned untouched; errors propagate and skip invalidation.
        """
        static: Optional[List[Pattern[str]]] = None
        if not callable(patterns):
            items = [patterns] if isinstance(patterns, (str, re.Pattern)) else list(patterns)
            # compile now so a bad pattern fails at import, not after a mutation
            static = [compile_pattern(p) for p in items]

        def decorator(func: Callable):
            request_arg = _request_param(func)
            response_arg = _response_param(func)

            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                request: Request = kwargs[request_arg]
                result = await _call_handler(func, *args, **kwargs)

                sub_response = kwargs.get(response_arg) if response_arg else None
                status_code, payload = _unpack(request, result, sub_response)
                if not _is_success(status_code):
                    return result

                if static is not None:
                    resolved = static
                else:
                    if isinstance(result, Response):
                        response = result
                    elif sub_response is not None:
                        response = sub_response
                    else:
                        response = Response(status_code=status_code)
                    dynamic = patterns(request, response, payload)
                    resolved = [dynamic] if isinstance(dynamic, (str, re.Pattern)) else list(dynamic)

                for pattern in resolved:
                    self.invalidate(pattern)

                caller_id = self._identify(request)
                if caller_id:
                    self.invalidate_user(caller_id)

                return result

            return wrapper
        return decorator
