"""
Tests for favorites
"""

import pytest

from src.services.favorites_service import FavoritesService


@pytest.mark.asyncio
async def test_add_favorite_is_idempotent(db_session, user, box):
    first = await FavoritesService.add_favorite(db_session, user.id, box_id=box.id)
    second = await FavoritesService.add_favorite(db_session, user.id, box_id=box.id)

    assert first.id == second.id
    assert len(await FavoritesService.list_favorites(db_session, user.id)) == 1


@pytest.mark.asyncio
async def test_toggle_favorite(db_session, user, product):
    is_fav, favorite = await FavoritesService.toggle_favorite(db_session, user.id, product_id=product.id)
    assert is_fav is True
    assert favorite.product_id == product.id
    assert await FavoritesService.is_favorite(db_session, user.id, product_id=product.id)

    is_fav, favorite = await FavoritesService.toggle_favorite(db_session, user.id, product_id=product.id)
    assert is_fav is False
    assert favorite is None
    assert not await FavoritesService.is_favorite(db_session, user.id, product_id=product.id)


@pytest.mark.asyncio
async def test_remove_favorite(db_session, user, box):
    await FavoritesService.add_favorite(db_session, user.id, box_id=box.id)

    assert await FavoritesService.remove_favorite(db_session, user.id, box_id=box.id) is True
    assert await FavoritesService.remove_favorite(db_session, user.id, box_id=box.id) is False


@pytest.mark.asyncio
async def test_favorite_requires_single_target(db_session, user, box, product):
    with pytest.raises(ValueError):
        await FavoritesService.add_favorite(db_session, user.id)
    with pytest.raises(ValueError):
        await FavoritesService.add_favorite(db_session, user.id, box_id=box.id, product_id=product.id)
