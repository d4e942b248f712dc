import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from storefront.api.deps import deleted, found, get_storage
from storefront.models.schemas import (
    CheckoutRequest, Order, OrderCreate, OrderItem, OrderItemCreate,
    PaymentStatusChange, StatusChange,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[Order])
def list_orders(user_id: Optional[int] = None, storage=Depends(get_storage)):
    if user_id is not None:
        return storage.get_orders_by_user(user_id)
    return storage.get_orders()


@router.post("/", response_model=Order, status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderCreate, storage=Depends(get_storage)):
    return storage.create_order(payload)


@router.post("/checkout", response_model=Order, status_code=status.HTTP_201_CREATED)
def checkout(payload: CheckoutRequest, storage=Depends(get_storage)):
    order = storage.place_order(payload.order, payload.items, payload.decrement_stock)
    logger.info(f"Checkout for user {order.user_id}: order {order.id}, total {order.total}")
    return order


@router.get("/{order_id}", response_model=Order)
def get_order(order_id: int, storage=Depends(get_storage)):
    return found(storage.get_order(order_id), "Order")


@router.patch("/{order_id}/status", response_model=Order)
def change_status(order_id: int, payload: StatusChange, storage=Depends(get_storage)):
    return found(storage.update_order_status(order_id, payload.status), "Order")


@router.patch("/{order_id}/payment", response_model=Order)
def change_payment_status(order_id: int, payload: PaymentStatusChange, storage=Depends(get_storage)):
    return found(storage.update_payment_status(order_id, payload.payment_status), "Order")


@router.get("/{order_id}/items", response_model=List[OrderItem])
def order_items(order_id: int, storage=Depends(get_storage)):
    found(storage.get_order(order_id), "Order")
    return storage.get_order_items(order_id)


@router.post("/{order_id}/items", response_model=OrderItem, status_code=status.HTTP_201_CREATED)
def add_order_item(order_id: int, payload: OrderItemCreate, storage=Depends(get_storage)):
    return storage.create_order_item(payload.model_copy(update={"order_id": order_id}))


@router.delete("/{order_id}")
def delete_order(order_id: int, storage=Depends(get_storage)):
    return deleted(storage.delete_order(order_id), "Order")
