from typing import List, Optional

from fastapi import APIRouter, Depends, status

from storefront.api.deps import deleted, found, get_storage
from storefront.models.schemas import Product, ProductCreate, ProductUpdate, Review, StockAdjustment

router = APIRouter()


@router.get("/", response_model=List[Product])
def list_products(
    category_id: Optional[int] = None,
    vendor_id: Optional[int] = None,
    q: Optional[str] = None,
    storage=Depends(get_storage),
):
    # One storage call per request; filters are not combined
    if q:
        return storage.search_products(q)
    if category_id is not None:
        return storage.get_products_by_category(category_id)
    if vendor_id is not None:
        return storage.get_products_by_vendor(vendor_id)
    return storage.get_products()


@router.get("/featured", response_model=List[Product])
def featured_products(storage=Depends(get_storage)):
    return storage.get_featured_products()


@router.post("/", response_model=Product, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, storage=Depends(get_storage)):
    return storage.create_product(payload)


@router.get("/{product_id}", response_model=Product)
def get_product(product_id: int, storage=Depends(get_storage)):
    return found(storage.get_product(product_id), "Product")


@router.patch("/{product_id}", response_model=Product)
def update_product(product_id: int, payload: ProductUpdate, storage=Depends(get_storage)):
    return found(storage.update_product(product_id, payload), "Product")


@router.post("/{product_id}/stock", response_model=Product)
def adjust_stock(product_id: int, payload: StockAdjustment, storage=Depends(get_storage)):
    return found(storage.adjust_product_stock(product_id, payload.delta), "Product")


@router.get("/{product_id}/reviews", response_model=List[Review])
def product_reviews(product_id: int, storage=Depends(get_storage)):
    return storage.get_reviews(product_id)


@router.delete("/{product_id}")
def delete_product(product_id: int, storage=Depends(get_storage)):
    return deleted(storage.delete_product(product_id), "Product")
