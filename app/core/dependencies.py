"""
Core dependencies: storage wiring, the repository, and principal resolution
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.config.settings import settings
from app.core.authorization import AuthorizationEngine, RoleWritePolicy
from app.core.membership_index import MembershipIndex
from app.core.repository import AccessControlledRepository
from app.database.storage import InMemoryStorage, Storage
from app.database.supabase_client import SupabaseClient, get_supabase
from app.modules.activity.recorder import ActivityRecorder
from app.modules.auth.service import AuthService
from app.modules.users.schemas import User
from supabase import Client
from typing import Optional
import logging
import threading

logger = logging.getLogger(__name__)

security = HTTPBearer()


class AccessLayer:
    """Process-wide storage, membership index and repository, built on first use."""

    _storage: Optional[Storage] = None
    _repository: Optional[AccessControlledRepository] = None
    _lock = threading.Lock()

    @classmethod
    def get_storage(cls) -> Storage:
        with cls._lock:
            if cls._storage is None:
                if settings.storage_backend == "supabase":
                    from app.database.supabase_storage import SupabaseStorage
                    cls._storage = SupabaseStorage(SupabaseClient.get_service_client())
                else:
                    cls._storage = InMemoryStorage()
                logger.info(f"Using {settings.storage_backend} storage backend")
            return cls._storage

    @classmethod
    def get_repository(cls) -> AccessControlledRepository:
        storage = cls.get_storage()
        with cls._lock:
            if cls._repository is None:
                index = MembershipIndex.from_storage(storage)
                engine = AuthorizationEngine(
                    index,
                    write_policy=RoleWritePolicy() if settings.role_write_policy else None,
                    owner_reads_all_users=settings.owner_reads_all_users,
                )
                cls._repository = AccessControlledRepository(
                    storage, index, engine, ActivityRecorder(storage),
                    conflict_retries=settings.conflict_retries,
                )
            return cls._repository

    @classmethod
    def reset(cls):
        with cls._lock:
            cls._storage = None
            cls._repository = None


def get_repository() -> AccessControlledRepository:
    return AccessLayer.get_repository()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service),
    repository: AccessControlledRepository = Depends(get_repository),
) -> User:
    """Resolve the bearer token to a live (non-deleted) user"""
    user_data = auth_service.get_current_user(credentials.credentials)
    principal = repository.resolve_principal(user_data["id"])
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found or deleted"
        )
    return principal


def get_client_ip(request: Request) -> Optional[str]:
    """Origin address for activity logs; honours the first X-Forwarded-For hop"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
