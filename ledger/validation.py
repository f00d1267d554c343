from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class ParseResult(Generic[ModelT]):
    """Outcome of validating an external payload: a typed value or field errors."""

    value: Optional[ModelT] = None
    errors: list[dict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.value is not None and not self.errors

    def unwrap(self) -> ModelT:
        if not self.success:
            raise ValidationError("Invalid input", self.errors)
        return self.value


def _field_errors(exc: PydanticValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"]) or "__root__"
        errors.append({"field": location, "message": err["msg"]})
    return errors


def safe_parse(model: type[ModelT], data: Any) -> ParseResult[ModelT]:
    if not isinstance(data, dict):
        return ParseResult(errors=[{"field": "__root__", "message": "Expected an object"}])
    try:
        return ParseResult(value=model.model_validate(data))
    except PydanticValidationError as e:
        return ParseResult(errors=_field_errors(e))


def parse_or_raise(model: type[ModelT], data: Any) -> ModelT:
    return safe_parse(model, data).unwrap()
