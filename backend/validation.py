# backend/validation.py - request validation gate for mutating routes
"""
Check an incoming request body against a pydantic schema before any handler
logic runs.

    check(schema, body)         -> Accepted(payload) | Rejected([FieldError, ...])
    validate(schema, inject=..) -> FastAPI dependency; returns the normalized
                                   payload or raises ValidationGateError

A body is never partially accepted: either the whole payload normalizes
(coercion, trimming, transforms, defaults) or every field problem is reported
with its dotted path, in schema order.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, Union

from fastapi import Request
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticUndefined

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldError:
    path: str       # "" when the payload as a whole is wrong
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass(frozen=True)
class Accepted:
    payload: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    errors: List[FieldError]

    @property
    def ok(self) -> bool:
        return False


ValidationResult = Union[Accepted, Rejected]


class ValidationGateError(Exception):
    """Raised by the gate dependency; turned into a 400 by the app's handler."""

    def __init__(self, errors: List[FieldError]):
        super().__init__(f"{len(errors)} validation error(s)")
        self.errors = list(errors)

    def to_list(self) -> List[Dict[str, str]]:
        return [e.to_dict() for e in self.errors]


def error_path(loc) -> str:
    return ".".join(str(part) for part in loc)


def _has_default(info) -> bool:
    if info.default_factory is not None:
        return True
    return info.default is not PydanticUndefined and info.default is not None


def _normalize(value: Any) -> Any:
    # supplied fields plus declared defaults; bare optionals stay absent
    if isinstance(value, BaseModel):
        out: Dict[str, Any] = {}
        for name, info in type(value).model_fields.items():
            if name not in value.model_fields_set and not _has_default(info):
                continue
            out[name] = _normalize(getattr(value, name))
        return out
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    return value


def check(schema: Type[BaseModel], body: Any) -> ValidationResult:
    # absent / null body is checked as an empty object
    if body is None:
        body = {}
    try:
        model = schema.model_validate(body)
    except ValidationError as exc:
        return Rejected([FieldError(error_path(e["loc"]), e["msg"]) for e in exc.errors()])
    return Accepted(_normalize(model))


def org_scope(request: Request) -> Dict[str, Any]:
    return {"organization_id": request.path_params["org_id"]}


def student_scope(request: Request) -> Dict[str, Any]:
    return {**org_scope(request), "student_id": request.path_params["student_id"]}


def validate(schema: Type[BaseModel], inject: Optional[Callable[[Request], Dict[str, Any]]] = None):
    """
    Build a FastAPI dependency that gates a route on `schema`.

    `inject` returns fields taken from the request itself (path params, session)
    which are merged over the body before checking, so a client cannot choose
    its own organization_id.
    """
    async def gate(request: Request) -> Dict[str, Any]:
        raw = await request.body()
        body: Any = None
        if raw.strip():
            try:
                body = json.loads(raw)
            except ValueError:
                logger.info("rejected %s %s: malformed JSON", request.method, request.url.path)
                raise ValidationGateError([FieldError("", "Malformed JSON body")])

        if inject is not None:
            extra = inject(request)
            if body is None:
                body = dict(extra)
            elif isinstance(body, dict):
                body = {**body, **extra}

        result = check(schema, body)
        if isinstance(result, Rejected):
            logger.info(
                "rejected %s %s against %s: %s",
                request.method, request.url.path, schema.__name__,
                ", ".join(e.path or "<body>" for e in result.errors),
            )
            raise ValidationGateError(result.errors)

        request.state.body = result.payload
        return result.payload

    gate.__name__ = f"validate_{schema.__name__}"
    return gate
