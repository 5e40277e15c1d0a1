# agricart/services/reporting.py
from __future__ import annotations

from typing import Any

import sqlalchemy as sa

from ..constants.roles import ROLE_BUYER, ROLE_FARMER
from ..extensions import db
from ..models import Order, OrderItem, OrderStatus, Payment, PaymentStatus, Product, User

LOW_STOCK_THRESHOLD = 5


def _paid_not_cancelled():
    return sa.and_(Order.paid_at.isnot(None), Order.status != OrderStatus.CANCELLED)


def platform_stats() -> dict[str, Any]:
    """Admin dashboard numbers. Sales count paid orders that were not cancelled."""
    users = db.session.scalar(sa.select(sa.func.count(User.id))) or 0
    farmers = db.session.scalar(sa.select(sa.func.count(User.id)).where(User.role == ROLE_FARMER)) or 0
    buyers = db.session.scalar(sa.select(sa.func.count(User.id)).where(User.role == ROLE_BUYER)) or 0
    products = db.session.scalar(sa.select(sa.func.count(Product.id))) or 0
    orders = db.session.scalar(sa.select(sa.func.count(Order.id))) or 0

    total_sales = db.session.scalar(
        sa.select(sa.func.coalesce(sa.func.sum(Order.total_price), 0.0)).where(_paid_not_cancelled())
    )

    by_status = {s.value: 0 for s in OrderStatus}
    rows = db.session.execute(sa.select(Order.status, sa.func.count(Order.id)).group_by(Order.status))
    for status, count in rows:
        by_status[status.value] = count

    pending_payments = db.session.scalar(
        sa.select(sa.func.count(Payment.id)).where(Payment.status == PaymentStatus.PENDING)
    ) or 0

    return {
        "users": users,
        "farmers": farmers,
        "buyers": buyers,
        "products": products,
        "orders": orders,
        "totalSales": round(float(total_sales or 0.0), 2),
        "ordersByStatus": by_status,
        "pendingPayments": pending_payments,
    }


def farmer_stats(farmer: User) -> dict[str, Any]:
    products = db.session.scalar(sa.select(sa.func.count(Product.id)).where(Product.farmer_id == farmer.id)) or 0
    low_stock = (
        Product.query.filter(Product.farmer_id == farmer.id, Product.stock <= LOW_STOCK_THRESHOLD)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )

    orders = db.session.scalar(
        sa.select(sa.func.count(sa.distinct(OrderItem.order_id))).where(OrderItem.farmer_id == farmer.id)
    ) or 0

    # Revenue is the farmer's own line items on paid, non-cancelled orders
    revenue = db.session.scalar(
        sa.select(sa.func.coalesce(sa.func.sum(OrderItem.price * OrderItem.quantity), 0.0))
        .join(Order, Order.id == OrderItem.order_id)
        .where(OrderItem.farmer_id == farmer.id, _paid_not_cancelled())
    )

    return {
        "products": products,
        "lowStock": [{"_id": p.id, "name": p.name, "stock": p.stock} for p in low_stock],
        "orders": orders,
        "revenue": round(float(revenue or 0.0), 2),
    }
