from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class CouponItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(..., alias="productId")


class CouponValidateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., min_length=1, max_length=64)
    subtotal: int = Field(..., gt=0, description="Order subtotal in rial")
    items: Optional[List[CouponItemIn]] = None
