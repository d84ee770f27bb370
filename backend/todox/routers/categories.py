from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from todox.core.database import get_db
from todox.models.user import User
from todox.routers.auth import get_current_user
from todox.schemas.category import CategoryIn, CategoryResponse
from todox.services import categories as category_service

router = APIRouter(
    prefix="/categories",
    tags=["categories"],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=List[CategoryResponse])
async def get_categories(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.list_categories(db, current_user.id)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_in: CategoryIn,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.create(db, current_user.id, category_in.name)


@router.put("/{category_id}", response_model=CategoryResponse)
async def rename_category(
    category_id: int,
    category_in: CategoryIn,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.rename(db, current_user.id, category_id, category_in.name)


@router.delete("/{category_id}", response_model=CategoryResponse)
async def delete_category(
    category_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.delete(db, current_user.id, category_id)
