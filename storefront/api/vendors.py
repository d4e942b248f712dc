from typing import List

from fastapi import APIRouter, Depends, status

from storefront.api.deps import deleted, found, get_storage
from storefront.models.schemas import Product, Vendor, VendorCreate, VendorUpdate

router = APIRouter()


@router.get("/", response_model=List[Vendor])
def list_vendors(storage=Depends(get_storage)):
    return storage.get_vendors()


@router.post("/", response_model=Vendor, status_code=status.HTTP_201_CREATED)
def create_vendor(payload: VendorCreate, storage=Depends(get_storage)):
    return storage.create_vendor(payload)


@router.get("/by-user/{user_id}", response_model=Vendor)
def vendor_for_user(user_id: int, storage=Depends(get_storage)):
    return found(storage.get_vendor_by_user_id(user_id), "Vendor")


@router.get("/{vendor_id}", response_model=Vendor)
def get_vendor(vendor_id: int, storage=Depends(get_storage)):
    return found(storage.get_vendor(vendor_id), "Vendor")


@router.get("/{vendor_id}/products", response_model=List[Product])
def vendor_products(vendor_id: int, storage=Depends(get_storage)):
    found(storage.get_vendor(vendor_id), "Vendor")
    return storage.get_products_by_vendor(vendor_id)


@router.patch("/{vendor_id}", response_model=Vendor)
def update_vendor(vendor_id: int, payload: VendorUpdate, storage=Depends(get_storage)):
    return found(storage.update_vendor(vendor_id, payload), "Vendor")


@router.delete("/{vendor_id}")
def delete_vendor(vendor_id: int, storage=Depends(get_storage)):
    return deleted(storage.delete_vendor(vendor_id), "Vendor")
