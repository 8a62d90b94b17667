"""
Favorites API Endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.database.engine import get_session
from src.database.models import User
from src.services.favorites_service import FavoritesService

router = APIRouter(prefix="/favorites", tags=["favorites"])


class FavoriteTarget(BaseModel):
    box_id: Optional[str] = None
    product_id: Optional[str] = None


class FavoriteResponse(BaseModel):
    id: str
    box_id: Optional[str]
    product_id: Optional[str]
    name: Optional[str]
    price: Optional[int]


def _check_target(target: FavoriteTarget) -> None:
    if bool(target.box_id) == bool(target.product_id):
        raise HTTPException(status_code=422, detail="Exactly one of box_id or product_id is required")


@router.get("", response_model=List[FavoriteResponse])
async def list_favorites(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    favorites = await FavoritesService.list_favorites(session, user.id)
    result = []
    for favorite in favorites:
        item = favorite.box or favorite.product
        result.append(
            FavoriteResponse(
                id=favorite.id,
                box_id=favorite.box_id,
                product_id=favorite.product_id,
                name=item.name if item else None,
                price=item.price if item else None,
            )
        )
    return result


@router.post("/toggle")
async def toggle_favorite(
    target: FavoriteTarget,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    _check_target(target)
    is_favorite, _ = await FavoritesService.toggle_favorite(
        session, user.id, box_id=target.box_id, product_id=target.product_id
    )
    return {"is_favorite": is_favorite}


@router.post("/check")
async def check_favorite(
    target: FavoriteTarget,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    _check_target(target)
    is_favorite = await FavoritesService.is_favorite(
        session, user.id, box_id=target.box_id, product_id=target.product_id
    )
    return {"is_favorite": is_favorite}


@router.delete("")
async def remove_favorite(
    target: FavoriteTarget,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    _check_target(target)
    removed = await FavoritesService.remove_favorite(
        session, user.id, box_id=target.box_id, product_id=target.product_id
    )
    return {"removed": removed}


@router.post("", response_model=FavoriteResponse, status_code=201)
async def add_favorite(
    target: FavoriteTarget,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Add item to favorites (existing entry is returned as is)"""
    _check_target(target)
    favorite = await FavoritesService.add_favorite(
        session, user.id, box_id=target.box_id, product_id=target.product_id
    )
    return FavoriteResponse(
        id=favorite.id,
        box_id=favorite.box_id,
        product_id=favorite.product_id,
        name=None,
        price=None,
    )
