# coding: utf-8
"""
Catalog API Endpoints
Boxes and products shown in the Mini App (public, available items only)
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.engine import get_session
from src.services.catalog_service import CatalogService

router = APIRouter(tags=["catalog"])


class BoxResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    category: Optional[str]
    price: int
    image_url: Optional[str]
    is_available: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ProductResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    category: Optional[str]
    price: int
    image_url: Optional[str]
    is_available: bool
    created_at: datetime

    model_config = {"from_attributes": True}


@router.get("/boxes", response_model=List[BoxResponse])
async def list_boxes(
    category: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    boxes = await CatalogService.list_boxes(session, category=category)
    return [BoxResponse.model_validate(box) for box in boxes]


@router.get("/boxes/{box_id}", response_model=BoxResponse)
async def get_box(box_id: str, session: AsyncSession = Depends(get_session)):
    box = await CatalogService.get_box(session, box_id)
    if not box or not box.is_available:
        raise HTTPException(status_code=404, detail="Box not found")
    return BoxResponse.model_validate(box)


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    category: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    products = await CatalogService.list_products(session, category=category)
    return [ProductResponse.model_validate(product) for product in products]


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, session: AsyncSession = Depends(get_session)):
    product = await CatalogService.get_product(session, product_id)
    if not product or not product.is_available:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductResponse.model_validate(product)
