import json
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from autocrm.core.errors import BadRequestError, RpcError
from autocrm.rpc.context import RpcContext, get_rpc_context, get_rpc_registry
from autocrm.rpc.registry import MUTATION, QUERY, ProcedureRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trpc", tags=["rpc"])


class BatchCall(BaseModel):
    id: Any = None
    procedure: str
    input: Any = None


def _execute(registry: ProcedureRegistry, ctx: RpcContext, name: str, raw_input: Any, kind: Optional[str] = None):
    """Run one procedure; anything that is not an RpcError becomes INTERNAL_SERVER_ERROR"""
    try:
        return jsonable_encoder(registry.call(ctx, name, raw_input, kind=kind))
    except RpcError as e:
        user_id = ctx.user.id if ctx.user else "anonymous"
        logger.error(f"Procedure {name} failed for {user_id}: {e.code} {e.message}")
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in procedure {name}")
        message = "Internal server error" if ctx.settings.is_production else str(e)
        raise RpcError(message)


def _error_response(error: RpcError) -> JSONResponse:
    return JSONResponse(status_code=error.http_status, content={"error": error.to_dict()})


@router.post("")
async def batch(
    calls: List[BatchCall],
    ctx: RpcContext = Depends(get_rpc_context),
    registry: ProcedureRegistry = Depends(get_rpc_registry),
):
    """Run several procedures in one request; a failing call does not stop the others"""
    results = []
    for call in calls:
        try:
            data = _execute(registry, ctx, call.procedure, call.input)
            results.append({"id": call.id, "result": {"data": data}})
        except RpcError as e:
            results.append({"id": call.id, "error": e.to_dict()})
    return results


@router.get("/{name}")
async def run_query(
    name: str,
    input: Optional[str] = None,
    ctx: RpcContext = Depends(get_rpc_context),
    registry: ProcedureRegistry = Depends(get_rpc_registry),
):
    try:
        raw_input = json.loads(input) if input else None
    except ValueError:
        return _error_response(BadRequestError("Input is not valid JSON"))
    try:
        data = _execute(registry, ctx, name, raw_input, kind=QUERY)
    except RpcError as e:
        return _error_response(e)
    return {"result": {"data": data}}


@router.post("/{name}")
async def run_mutation(
    name: str,
    request: Request,
    ctx: RpcContext = Depends(get_rpc_context),
    registry: ProcedureRegistry = Depends(get_rpc_registry),
):
    body = await request.body()
    try:
        raw_input = json.loads(body) if body else None
    except ValueError:
        return _error_response(BadRequestError("Input is not valid JSON"))
    try:
        data = _execute(registry, ctx, name, raw_input, kind=MUTATION)
    except RpcError as e:
        return _error_response(e)
    return {"result": {"data": data}}
