"""JSON response classes using orjson serialization.

``ORJSONResponse`` is the application's default response class.
``ProblemJSONResponse`` renders RFC 9457 problem details with the
``application/problem+json`` media type.
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tracetour.api.constants import PROBLEM_JSON_CONTENT_TYPE


class ORJSONResponse(JSONResponse):
    """JSON response rendered with orjson (sorted keys, native datetimes)."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")
        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


class ProblemJSONResponse(ORJSONResponse):
    """Problem details response.

    The status code is taken from the problem itself so the two never
    disagree.
    """

    media_type = PROBLEM_JSON_CONTENT_TYPE

    def __init__(self, problem: BaseModel, **kwargs: Any) -> None:
        status = getattr(problem, "status", 500)
        super().__init__(content=problem, status_code=status, **kwargs)
