"""
Tests for catalog (boxes and products)
"""

import pytest

from src.services.catalog_service import CatalogService


@pytest.mark.asyncio
async def test_create_and_list_boxes(db_session):
    box = await CatalogService.create_box(
        db_session, name="Fitness Box", price=2990, category="fitness", description="Протеин и батончики"
    )
    await CatalogService.create_box(db_session, name="Yoga Box", price=1990, category="yoga")

    assert box.is_available is True
    assert {b.name for b in await CatalogService.list_boxes(db_session)} == {"Fitness Box", "Yoga Box"}
    fitness = await CatalogService.list_boxes(db_session, category="fitness")
    assert [b.id for b in fitness] == [box.id]


@pytest.mark.asyncio
async def test_unavailable_box_hidden_from_mini_app(db_session):
    box = await CatalogService.create_box(db_session, name="Fitness Box", price=2990)

    await CatalogService.set_box_available(db_session, box.id, False)

    assert await CatalogService.list_boxes(db_session) == []
    assert len(await CatalogService.list_boxes(db_session, available_only=False)) == 1


@pytest.mark.asyncio
async def test_update_box_only_given_fields(db_session):
    box = await CatalogService.create_box(db_session, name="Fitness Box", price=2990, category="fitness")

    updated = await CatalogService.update_box(db_session, box.id, price=2490, name=None)

    assert updated.price == 2490
    assert updated.name == "Fitness Box"
    assert updated.category == "fitness"


@pytest.mark.asyncio
async def test_update_missing_box(db_session):
    assert await CatalogService.update_box(db_session, "missing", price=100) is None


@pytest.mark.asyncio
async def test_catalog_rejects_bad_input(db_session):
    with pytest.raises(ValueError):
        await CatalogService.create_box(db_session, name="Broken", price=-1)

    product = await CatalogService.create_product(db_session, name="Protein Bar", price=150)
    with pytest.raises(ValueError):
        await CatalogService.update_product(db_session, product.id, price=-5)
    with pytest.raises(ValueError):
        await CatalogService.update_product(db_session, product.id, stock=10)


@pytest.mark.asyncio
async def test_products_by_category(db_session):
    bar = await CatalogService.create_product(db_session, name="Protein Bar", price=150, category="food")
    await CatalogService.create_product(db_session, name="Shaker", price=490, category="gear")

    food = await CatalogService.list_products(db_session, category="food")

    assert [p.id for p in food] == [bar.id]
    assert (await CatalogService.get_product(db_session, bar.id)).name == "Protein Bar"

    await CatalogService.set_product_available(db_session, bar.id, False)
    assert await CatalogService.list_products(db_session, category="food") == []
