"""
Named procedures behind the /trpc endpoint.

A procedure is a query (read, GET or batch) or a mutation (write, POST or batch),
optionally with a pydantic model its input is validated against. Protected
procedures refuse anonymous callers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from autocrm.core.errors import (
    BadRequestError, MethodNotSupportedError, NotFoundError, UnauthorizedError
)

logger = logging.getLogger(__name__)

QUERY = "query"
MUTATION = "mutation"


@dataclass(frozen=True)
class Procedure:
    name: str
    kind: str
    handler: Callable[..., Any]
    input_model: Optional[Type[BaseModel]] = None
    protected: bool = True


def validation_message(error: ValidationError) -> str:
    messages = []
    for err in error.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(messages)


class ProcedureRegistry:
    def __init__(self):
        self._procedures: Dict[str, Procedure] = {}

    def register(self, procedure: Procedure) -> Procedure:
        if procedure.name in self._procedures:
            raise ValueError(f"Procedure {procedure.name} is already registered")
        self._procedures[procedure.name] = procedure
        return procedure

    def query(self, name: str, input_model: Optional[Type[BaseModel]] = None, protected: bool = True):
        def decorator(handler):
            self.register(Procedure(name, QUERY, handler, input_model, protected))
            return handler
        return decorator

    def mutation(self, name: str, input_model: Optional[Type[BaseModel]] = None, protected: bool = True):
        def decorator(handler):
            self.register(Procedure(name, MUTATION, handler, input_model, protected))
            return handler
        return decorator

    def get(self, name: str) -> Procedure:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise NotFoundError(f"No procedure found on path \"{name}\"")
        return procedure

    def names(self) -> List[str]:
        return sorted(self._procedures)

    def __contains__(self, name: str) -> bool:
        return name in self._procedures

    def call(self, ctx, name: str, raw_input: Any = None, kind: Optional[str] = None) -> Any:
        """Run a procedure; `kind` restricts which procedures the transport may reach"""
        procedure = self.get(name)
        if kind and procedure.kind != kind:
            raise MethodNotSupportedError(f"Unsupported {kind} call to {procedure.kind} procedure \"{name}\"")
        if procedure.protected and ctx.user is None:
            raise UnauthorizedError("Not authenticated")

        # services validate writes against the table shapes as well
        try:
            if procedure.input_model is None:
                return procedure.handler(ctx)
            parsed = procedure.input_model.model_validate(raw_input if raw_input is not None else {})
            return procedure.handler(ctx, parsed)
        except ValidationError as e:
            raise BadRequestError(validation_message(e))
