# app/services/cache_keys.py

import json
from typing import Any, Dict, List, Mapping, Optional, Union

from starlette.requests import Request

ANONYMOUS = "anonymous"
CALLER_PREFIX = "user"
KEY_DELIMITER = ":"

QueryParams = Mapping[str, Union[str, List[str]]]


def _escape(part: str) -> str:
    # "%" first so the encoding stays reversible; afterwards ":" only ever appears as the delimiter
    return part.replace("%", "%25").replace(KEY_DELIMITER, "%3A")


def _caller(caller_id: Optional[Any]) -> str:
    if caller_id is None or caller_id == "":
        return ANONYMOUS
    return _escape(str(caller_id))


def caller_segment(caller_id: Optional[Any]) -> str:
    """The trailing key segment that identifies the caller (e.g. ':user42')."""
    return f"{KEY_DELIMITER}{CALLER_PREFIX}{_caller(caller_id)}"


def derive_key(method: str, path: str, query_params: QueryParams, caller_id: Optional[Any] = None) -> str:
    """
    Build the cache key for a request: METHOD:path:{query json}:user<caller>.

    Each component is percent-escaped for "%" and ":", so no component can
    forge a delimiter and distinct requests never share a key.
    The query mapping is serialized with sorted keys so logically identical
    mappings always produce the same text. `path` is taken as given (it carries
    the raw query string), so two URLs listing parameters in a different order
    still map to different keys.
    """
    query = json.dumps(dict(query_params), sort_keys=True, separators=(",", ":"))
    return KEY_DELIMITER.join((_escape(method), _escape(path), _escape(query))) + caller_segment(caller_id)


def query_params_from(request: Request) -> Dict[str, Union[str, List[str]]]:
    """Flatten Starlette's multi-dict: repeated parameters become lists, arrival order kept."""
    params: Dict[str, Union[str, List[str]]] = {}
    for name in request.query_params.keys():
        if name in params:
            continue
        values = request.query_params.getlist(name)
        params[name] = values if len(values) > 1 else values[0]
    return params


def request_path(request: Request) -> str:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return path
