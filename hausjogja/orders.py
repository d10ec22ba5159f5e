# orders.py
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hausjogja.auth import get_current_user, require_admin
from hausjogja.common import CamelModel, Pagination, dump, success
from hausjogja.db import get_db
from hausjogja.models import Order, OrderItem, OrderStatus, Product, User
from hausjogja.products import ProductOut

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["Orders"])


# --- Pydantic Schemas for Data Validation ---

class OrderItemIn(CamelModel):
    product_id: int
    quantity: int


class OrderCreate(CamelModel):
    # Both are checked by `create_order` so the client gets one clear message.
    items: Optional[List[OrderItemIn]] = None
    address: Optional[str] = None


class OrderStatusUpdate(CamelModel):
    status: Optional[str] = None


class OrderUserOut(CamelModel):
    id: int
    name: str
    email: str


class OrderItemOut(CamelModel):
    id: int
    product_id: int
    quantity: int
    price: float
    product: Optional[ProductOut] = None


class OrderOut(CamelModel):
    id: int
    user_id: int
    status: OrderStatus
    total: float
    address: str
    created_at: datetime
    updated_at: datetime
    user: Optional[OrderUserOut] = None
    order_items: List[OrderItemOut] = Field(
        default_factory=list, validation_alias="items", serialization_alias="orderItems"
    )


# --- Core Order Logic ---

def parse_status(value: Optional[str]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status")


def _with_details(query):
    return query.options(
        selectinload(Order.user),
        selectinload(Order.items).selectinload(OrderItem.product).selectinload(Product.category),
    ).execution_options(populate_existing=True)


async def load_order(db: AsyncSession, order_id: int) -> Optional[Order]:
    """Fetches an order with its user, items and each item's product."""
    query = _with_details(select(Order).where(Order.id == order_id))
    return (await db.execute(query)).scalars().first()


async def create_order(
    db: AsyncSession,
    user: User,
    items: Optional[Iterable[OrderItemIn]],
    address: Optional[str],
) -> Order:
    """
    Places an order for `user`.

    1. Rejects an empty cart, a blank address or any quantity <= 0 before
       touching the database.
    2. Loads the distinct requested products that are still available;
       if any is missing or unavailable the whole order is refused.
    3. Prices come from the catalog, never from the client. Each line
       stores that price as a snapshot and the total is their sum.
    4. The order and all of its lines are written in one transaction.
    """
    items = list(items or [])
    if not items or not address or not address.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please provide items and address")

    for item in items:
        if item.quantity <= 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity must be greater than 0")

    product_ids = {item.product_id for item in items}
    result = await db.execute(
        select(Product).where(Product.id.in_(product_ids), Product.is_available.is_(True))
    )
    products = {product.id: product for product in result.scalars().all()}

    if len(products) != len(product_ids):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One or more products are unavailable or do not exist",
        )

    total = 0.0
    order_items = []
    for item in items:
        product = products[item.product_id]
        total += product.price * item.quantity
        order_items.append(OrderItem(product_id=product.id, quantity=item.quantity, price=product.price))

    order = Order(
        user_id=user.id,
        status=OrderStatus.PENDING,
        total=total,
        address=address.strip(),
        items=order_items,
    )
    # Rollback expires `user`, so its id is read up front.
    user_id = user.id
    db.add(order)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception(f"Could not persist order for user {user_id}")
        raise

    logger.info(f"User {user_id} placed order {order.id} ({len(order_items)} items, total {total})")
    return order


def _serialize(order: Order) -> dict:
    return dump(OrderOut.model_validate(order))


# --- API Endpoints ---

@router.post("", status_code=status.HTTP_201_CREATED, summary="Place an order")
async def place_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = await create_order(db, current_user, payload.items, payload.address)
    return success(_serialize(await load_order(db, order.id)))


@router.get("", summary="List all orders (admin only)")
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    pagination: Pagination = Depends(),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    criteria = []
    if status_filter:
        criteria.append(Order.status == parse_status(status_filter))

    query = _with_details(
        select(Order)
        .where(*criteria)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    orders = (await db.execute(query)).scalars().all()
    total = (await db.execute(select(func.count(Order.id)).where(*criteria))).scalar_one()

    return success([_serialize(o) for o in orders], pagination=pagination.meta(total))


@router.get("/myorders", summary="List the caller's orders")
async def list_my_orders(
    pagination: Pagination = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = _with_details(
        select(Order)
        .where(Order.user_id == current_user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    orders = (await db.execute(query)).scalars().all()
    total = (await db.execute(
        select(func.count(Order.id)).where(Order.user_id == current_user.id)
    )).scalar_one()

    return success([_serialize(o) for o in orders], pagination=pagination.meta(total))


@router.get("/{order_id}", summary="Get an order (owner or admin)")
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = await load_order(db, order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if order.user_id != current_user.id and not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to access this order")
    return success(_serialize(order))


@router.put("/{order_id}/status", summary="Change an order's status (admin only)")
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """
    Sets the status to any of PENDING, PROCESSING, COMPLETED, CANCELLED.
    There is no transition table: an admin may move an order from any
    status to any other, including back to PENDING.
    """
    new_status = parse_status(payload.status)

    order = await db.get(Order, order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    previous = order.status
    order.status = new_status
    await db.commit()

    logger.info(f"Admin {admin.id} moved order {order_id} from {previous.value} to {new_status.value}")
    return success(_serialize(await load_order(db, order_id)))
