from typing import List

from fastapi import APIRouter, Depends, status

from storefront.api.deps import deleted, found, get_storage
from storefront.models.schemas import Review, ReviewCreate, ReviewUpdate

router = APIRouter()


@router.get("/product/{product_id}", response_model=List[Review])
def reviews_for_product(product_id: int, storage=Depends(get_storage)):
    return storage.get_reviews(product_id)


@router.get("/user/{user_id}", response_model=List[Review])
def reviews_by_user(user_id: int, storage=Depends(get_storage)):
    return storage.get_reviews_by_user(user_id)


@router.post("/", response_model=Review, status_code=status.HTTP_201_CREATED)
def create_review(payload: ReviewCreate, storage=Depends(get_storage)):
    found(storage.get_product(payload.product_id), "Product")
    return storage.create_review(payload)


@router.get("/{review_id}", response_model=Review)
def get_review(review_id: str, storage=Depends(get_storage)):
    return found(storage.get_review(review_id), "Review")


@router.patch("/{review_id}", response_model=Review)
def update_review(review_id: str, payload: ReviewUpdate, storage=Depends(get_storage)):
    return found(storage.update_review(review_id, payload), "Review")


@router.delete("/{review_id}")
def delete_review(review_id: str, storage=Depends(get_storage)):
    return deleted(storage.delete_review(review_id), "Review")
