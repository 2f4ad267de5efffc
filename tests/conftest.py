import os
import tempfile

# settings are read at import time , point them at a throwaway database first
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/storefront_test.db"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["ZARINPAL_MERCHANT_ID"] = "1344b5d4-0048-11e8-94db-005056a205be"
os.environ["ZARINPAL_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["ZARINPAL_SANDBOX"] = "true"
os.environ["APP_URL"] = "http://shop.test"
os.environ["GATEWAY_BACKOFF_BASE"] = "0"
os.environ["SKIP_SMS_IN_DEV"] = "false"

import json
from datetime import timedelta
import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlmodel import SQLModel
from storefront.auth.utils import create_access_token
from storefront.common.utils import now
from storefront.db.connection import async_engine, async_session
from storefront.main import app
from storefront.notifications.dependencies import get_notifier
from storefront.payments.dependencies import get_gateway
from storefront.payments.zarinpal import ZarinpalGateway
from storefront.schema.full_schema import (Category, Coupon, CouponScope, DiscountType, Product, ProductVariant,
                                           UserRole, Users)

from helpers import AUTHORITY, MERCHANT_ID


class FakeNotifier:
    """Records what services publish instead of queueing sms jobs."""

    def __init__(self):
        self.published = []

    def publish(self, event, receptor, **context):
        if not receptor:
            return False
        self.published.append({"event": event, "receptor": receptor, "context": context})
        return True

    def events(self):
        return [p["event"] for p in self.published]


class FakeZarinpal:
    """httpx.MockTransport handler answering like the zarinpal v4 api."""

    def __init__(self):
        self.calls = []
        self.authority = AUTHORITY
        self.request_code = 100
        self.verify_code = 100
        self.ref_id = 201
        self.verify_error = None      # {"code": -51, "message": ...} answers with an errors body
        self.fail_statuses = []       # http statuses to answer before behaving

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.calls.append({"path": request.url.path, "json": body})

        if self.fail_statuses:
            return httpx.Response(self.fail_statuses.pop(0), json={"data": [], "errors": {"message": "down"}})

        if request.url.path.endswith("/payment/request.json"):
            return httpx.Response(200, json={
                "data": {"code": self.request_code, "message": "Success", "authority": self.authority,
                         "fee_type": "Merchant", "fee": 100},
                "errors": [],
            })

        if self.verify_error is not None:
            return httpx.Response(200, json={"data": [], "errors": self.verify_error})
        return httpx.Response(200, json={
            "data": {"code": self.verify_code, "message": "Verified", "ref_id": self.ref_id,
                     "card_pan": "502229******5995", "fee": 100},
            "errors": [],
        })

    def paths(self):
        return [c["path"] for c in self.calls]


@pytest.fixture
async def setup_db():
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    # pooled aiosqlite connections are bound to this test's event loop
    await async_engine.dispose()


@pytest.fixture
async def db_session(setup_db):
    async with async_session() as session:
        yield session


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def zarinpal():
    return FakeZarinpal()


@pytest.fixture
def gateway(zarinpal):
    return ZarinpalGateway(merchant_id=MERCHANT_ID, sandbox=True, transport=httpx.MockTransport(zarinpal),
                           max_retries=3, backoff_base=0)


@pytest.fixture
async def seed(setup_db):
    """Customers , an admin , two products (one with a variant) and a coupon."""
    async with async_session() as session:
        customer = Users(first_name="Sara", last_name="Ahmadi", phone="09121234567", role=UserRole.CUSTOMER.value)
        other = Users(first_name="Reza", phone="09351112233", role=UserRole.CUSTOMER.value)
        admin = Users(first_name="Admin", phone="09120000000", role=UserRole.ADMIN.value)
        skincare = Category(name="skincare")
        haircare = Category(name="haircare")
        session.add_all([customer, other, admin, skincare, haircare])
        await session.flush()

        cream = Product(name="Face cream", sku="SKN-001", price=1_250_000, stock_quantity=10, is_in_stock=True,
                        category_id=skincare.id)
        lipstick = Product(name="Lipstick", sku="MKP-001", price=500_000, stock_quantity=5, is_in_stock=True,
                           category_id=haircare.id)
        session.add_all([cream, lipstick])
        await session.flush()

        red = ProductVariant(product_id=lipstick.id, name="Red", sku="MKP-001-RED", price=600_000,
                             stock_quantity=3, is_in_stock=True)
        coupon = Coupon(code="SAVE10", description="10 percent off", discount_type=DiscountType.PERCENTAGE.value,
                        discount_value=10, maximum_discount=1_000_000, usage_limit=5, usage_count=0,
                        valid_from=now() - timedelta(days=1), valid_until=now() + timedelta(days=30),
                        applicable_to=CouponScope.ALL.value)
        session.add_all([red, coupon])
        await session.commit()

        return {
            "customer_id": customer.id,
            "other_id": other.id,
            "admin_id": admin.id,
            "skincare_id": skincare.id,
            "haircare_id": haircare.id,
            "cream_id": cream.id,
            "lipstick_id": lipstick.id,
            "red_id": red.id,
            "coupon_id": coupon.id,
        }


@pytest.fixture
def auth_headers():
    def _headers(user_id, roles=(UserRole.CUSTOMER.value,)):
        token = create_access_token(user_id, list(roles))
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
async def ac_client(setup_db, notifier, gateway):
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_gateway] = lambda: gateway
    try:
        async with LifespanManager(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                yield ac
    finally:
        app.dependency_overrides.clear()
