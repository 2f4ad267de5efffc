from fastapi import APIRouter
from storefront.api.__init__ import version_prefix
from storefront.coupons.routes import coupons_router
from storefront.cron.routes import cron_router
from storefront.orders.admin_routes import orders_admin_router
from storefront.orders.routes import orders_router
from storefront.payments.routes import payments_router



public_routers = APIRouter(prefix=version_prefix)


public_routers.include_router(orders_router, prefix="/orders",tags=["orders"])
public_routers.include_router(coupons_router, prefix="/coupons",tags=["coupons"])
public_routers.include_router(payments_router, prefix="/payment",tags=["payment"])
public_routers.include_router(cron_router, prefix="/cron",tags=["cron"])

#--------------------------------------------------------------------------------------------------------

admin_routers = APIRouter(prefix=f"{version_prefix}/admin")

admin_routers.include_router(orders_admin_router, prefix="/orders",tags=["orders-admin"])
