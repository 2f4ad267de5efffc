from sqlalchemy import select, update
from storefront.auth.dependencies import CurrentUser
from storefront.common.utils import now
from storefront.db.connection import async_session
from storefront.orders.services import place_order
from storefront.schema.full_schema import (Coupon, OrderItem, Orders, OrderStatus, PaymentMethod, PaymentStatus,
                                           Product, ProductVariant, UserRole)

url_prefix = "/api/v1"

MERCHANT_ID = "1344b5d4-0048-11e8-94db-005056a205be"
WEBHOOK_SECRET = "test-webhook-secret"
CRON_SECRET = "test-cron-secret"
AUTHORITY = "A00000000000000000000000000217885159"


def customer(user_id):
    return CurrentUser(user_id=user_id, roles=[UserRole.CUSTOMER.value])


def admin(user_id):
    return CurrentUser(user_id=user_id, roles=[UserRole.ADMIN.value])


async def stock_of(product_id):
    async with async_session() as session:
        return (await session.get(Product, product_id)).stock_quantity


async def variant_stock_of(variant_id):
    async with async_session() as session:
        return (await session.get(ProductVariant, variant_id)).stock_quantity


async def coupon_usage(coupon_id):
    async with async_session() as session:
        return (await session.get(Coupon, coupon_id)).usage_count


async def load_order(order_id):
    async with async_session() as session:
        return await session.get(Orders, order_id)


async def count_orders():
    async with async_session() as session:
        res = await session.execute(select(Orders.id))
        return len(res.all())


async def count_order_items():
    async with async_session() as session:
        res = await session.execute(select(OrderItem.id))
        return len(res.all())


async def new_order(user_id, items, *, payment_method=PaymentMethod.ZARINPAL.value, coupon_code=None,
                    customer_phone="09121234567", notifier=None):
    async with async_session() as session:
        return await place_order(session, customer(user_id), items, payment_method=payment_method,
                                 coupon_code=coupon_code, customer_phone=customer_phone, notifier=notifier)


async def set_order(order_id, **values):
    async with async_session() as session:
        await session.execute(update(Orders).where(Orders.id == order_id).values(**values))
        await session.commit()


async def mark_paid(order_id):
    await set_order(order_id, status=OrderStatus.CONFIRMED.value, payment_status=PaymentStatus.PAID.value,
                    payment_date=now(), expires_at=None)
