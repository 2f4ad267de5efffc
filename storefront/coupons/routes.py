from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import CurrentUser, get_optional_user
from storefront.common.utils import success_response
from storefront.coupons.models import CouponValidateIn
from storefront.coupons.services import validate_coupon
from storefront.db.dependencies import get_session

coupons_router = APIRouter()


@coupons_router.post("/validate")
async def validate_coupon_code(payload: CouponValidateIn,
                               user: Optional[CurrentUser] = Depends(get_optional_user),
                               session: AsyncSession = Depends(get_session)):

    items = [{"product_id": it.product_id} for it in (payload.items or [])]
    coupon, discount = await validate_coupon(
        session, payload.code, payload.subtotal, items,
        user_id=user.user_id if user else None,
    )
    data = {
        "coupon": {
            "id": coupon.id,
            "code": coupon.code,
            "description": coupon.description,
            "discountType": coupon.discount_type,
            "discountValue": coupon.discount_value,
        },
        "discountAmount": discount,
    }
    return success_response(data)
