from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from supabase import Client

from autocrm.config import Settings
from autocrm.core.dependencies import get_optional_user, get_settings
from autocrm.database.supabase_client import get_supabase
from autocrm.modules.auth.schemas import AuthUser


@dataclass
class RpcContext:
    """Per-request context handed to every procedure"""
    user: Optional[AuthUser]
    supabase: Client
    settings: Settings


def get_rpc_context(
    user: Optional[AuthUser] = Depends(get_optional_user),
    supabase: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
) -> RpcContext:
    return RpcContext(user=user, supabase=supabase, settings=settings)


def get_rpc_registry(request: Request):
    return request.app.state.rpc_registry
