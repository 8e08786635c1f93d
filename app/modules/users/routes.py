from fastapi import APIRouter, Depends
from app.core.dependencies import get_client_ip, get_current_principal, get_repository
from app.core.repository import AccessControlledRepository
from app.modules.users.schemas import User, UserUpdate, UserResponse
from app.modules.users.service import UserService
from typing import List, Optional

router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(repository: AccessControlledRepository = Depends(get_repository)) -> UserService:
    return UserService(repository)


@router.get("", response_model=List[UserResponse])
async def list_users(
    principal: User = Depends(get_current_principal),
    service: UserService = Depends(get_user_service)
):
    """List users visible to the caller (only itself unless the owner extension is on)"""
    return service.list_users(principal)


@router.get("/me", response_model=UserResponse)
async def get_me(
    principal: User = Depends(get_current_principal),
    service: UserService = Depends(get_user_service)
):
    return service.get_user(principal, principal.id)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    principal: User = Depends(get_current_principal),
    service: UserService = Depends(get_user_service)
):
    return service.get_user(principal, user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    principal: User = Depends(get_current_principal),
    service: UserService = Depends(get_user_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    return service.update_user(principal, user_id, user_data, ip_address)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    principal: User = Depends(get_current_principal),
    service: UserService = Depends(get_user_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    """Soft-delete the account"""
    service.delete_user(principal, user_id, ip_address)
    return None
