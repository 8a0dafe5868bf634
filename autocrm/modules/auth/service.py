import hashlib
import logging
import time
from supabase import Client
from autocrm.modules.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, RegisterResponse, AuthUser
from autocrm.config.permissions_config import DEFAULT_ROLE
from autocrm.database.queries import active
from fastapi import HTTPException
from typing import Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)


class TokenCache:
    """Short-lived cache of verified tokens, to avoid one Supabase auth call per request."""

    def __init__(self, ttl_sec: int = 60, max_size: int = 500):
        self.ttl_sec = ttl_sec
        self.max_size = max_size
        self._entries: Dict[str, Tuple[Dict[str, Any], float]] = {}

    @staticmethod
    def _key(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        key = self._key(token)
        entry = self._entries.get(key)
        if entry is None:
            return None
        user_data, expiry = entry
        if time.monotonic() >= expiry:
            del self._entries[key]
            return None
        return user_data

    def put(self, token: str, user_data: Dict[str, Any]):
        """Cache a verified token; expired entries go first, then the oldest one when still full"""
        now = time.monotonic()
        key = self._key(token)
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_size:
            for stale in [k for k, (_, expiry) in self._entries.items() if now >= expiry]:
                del self._entries[stale]
        while self._entries and len(self._entries) >= self.max_size:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (user_data, now + self.ttl_sec)

    def discard(self, token: str):
        self._entries.pop(self._key(token), None)

    def clear(self):
        self._entries.clear()


def strip_bearer(authorization: Optional[str]) -> Optional[str]:
    """Token from an Authorization header value; None for a missing or empty header."""
    if not authorization:
        return None
    token = authorization[len("Bearer "):] if authorization.startswith("Bearer ") else authorization
    token = token.strip()
    return token or None


class AuthService:
    def __init__(self, supabase: Client, token_cache: Optional[TokenCache] = None):
        self.supabase = supabase
        self.token_cache = token_cache or TokenCache()

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Register a new user using Supabase Auth"""
        try:
            user_metadata = {}
            if register_data.full_name:
                user_metadata["full_name"] = register_data.full_name

            auth_response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {
                    "data": user_metadata
                }
            })

            if not auth_response.user:
                raise HTTPException(status_code=400, detail="Failed to register user")

            return RegisterResponse(
                user_id=auth_response.user.id,
                email=auth_response.user.email or register_data.email,
                message="User registered successfully"
            )
        except HTTPException:
            raise
        except Exception as e:
            error_message = str(e)
            if "already registered" in error_message.lower() or "already exists" in error_message.lower():
                raise HTTPException(status_code=400, detail="User already exists")
            raise HTTPException(status_code=500, detail=f"Registration failed: {error_message}")

    def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate user using Supabase Auth"""
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })

            if not auth_response.user or not auth_response.session:
                raise HTTPException(status_code=401, detail="Invalid credentials")

            return TokenResponse(
                access_token=auth_response.session.access_token,
                token_type="bearer",
                user_id=auth_response.user.id,
                email=auth_response.user.email or login_data.email
            )
        except HTTPException:
            raise
        except Exception as e:
            error_message = str(e)
            if "invalid" in error_message.lower() or "credentials" in error_message.lower():
                raise HTTPException(status_code=401, detail="Invalid email or password")
            raise HTTPException(status_code=500, detail=f"Login failed: {error_message}")

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from a Supabase Auth token. Uses the short TTL cache."""
        try:
            cached = self.token_cache.get(token)
            if cached is not None:
                return cached
            user_response = self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            user = user_response.user
            user_data = {
                "id": user.id,
                "email": user.email,
                "role": getattr(user, "role", None) or "authenticated",
                "user_metadata": user.user_metadata or {},
                "app_metadata": user.app_metadata or {},
            }
            self.token_cache.put(token, user_data)
            return user_data
        except HTTPException:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Token expired")
            if "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid token")
            raise HTTPException(status_code=401, detail="Invalid authorization token")

    def get_memberships(self, user_id: str) -> Dict[str, str]:
        """organization_id -> role for every active membership of the user"""
        result = active(
            self.supabase.table("profile_organization_members")
            .select("organization_id, role")
            .eq("profile_id", user_id)
        ).execute()
        return {
            m["organization_id"]: m.get("role") or DEFAULT_ROLE
            for m in (result.data or [])
        }

    def get_full_name(self, user_id: str) -> Optional[str]:
        result = self.supabase.table("profiles")\
            .select("full_name")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return result.data[0].get("full_name")

    def authenticate(self, token: str) -> AuthUser:
        """Verify the token and load the caller's profile name and organization roles."""
        user_data = self.get_current_user(token)
        return AuthUser(
            id=user_data["id"],
            email=user_data.get("email") or "",
            role=user_data.get("role") or "authenticated",
            full_name=self.get_full_name(user_data["id"]),
            organizations=self.get_memberships(user_data["id"]),
        )

    def logout(self, token: str) -> bool:
        """Logout user using Supabase Auth"""
        self.token_cache.discard(token)
        try:
            # Supabase Auth tokens are stateless JWTs; the token stays valid until it expires
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Sign out failed: {e}")
            return False
