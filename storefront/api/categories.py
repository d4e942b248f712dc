from typing import List

from fastapi import APIRouter, Depends, status

from storefront.api.deps import deleted, found, get_storage
from storefront.models.schemas import Category, CategoryCreate, CategoryUpdate, Product

router = APIRouter()


@router.get("/", response_model=List[Category])
def list_categories(storage=Depends(get_storage)):
    return storage.get_categories()


@router.post("/", response_model=Category, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryCreate, storage=Depends(get_storage)):
    return storage.create_category(payload)


@router.get("/{category_id}", response_model=Category)
def get_category(category_id: int, storage=Depends(get_storage)):
    return found(storage.get_category(category_id), "Category")


@router.get("/{category_id}/products", response_model=List[Product])
def category_products(category_id: int, storage=Depends(get_storage)):
    found(storage.get_category(category_id), "Category")
    return storage.get_products_by_category(category_id)


@router.patch("/{category_id}", response_model=Category)
def update_category(category_id: int, payload: CategoryUpdate, storage=Depends(get_storage)):
    return found(storage.update_category(category_id, payload), "Category")


@router.delete("/{category_id}")
def delete_category(category_id: int, storage=Depends(get_storage)):
    return deleted(storage.delete_category(category_id), "Category")
