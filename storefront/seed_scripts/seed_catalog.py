import asyncio
from datetime import timedelta
from dotenv import load_dotenv
from sqlmodel import select

from storefront.common.utils import now
from storefront.db.connection import async_session
from storefront.schema.full_schema import Category, Coupon, CouponScope, DiscountType, Product, ProductVariant

load_dotenv()

# (sku, name, price in rial, stock)
PRODUCTS = [
    ("SKN-001", "Hydrating face cream", 1_250_000, 40),
    ("SKN-002", "Vitamin C serum", 2_100_000, 25),
    ("HAR-001", "Argan hair oil", 890_000, 60),
    ("MKP-001", "Matte lipstick", 650_000, 3),
]

VARIANTS = {
    "MKP-001": [("MKP-001-RED", "Red", None, 2), ("MKP-001-NUDE", "Nude", 700_000, 5)],
}


async def seed_catalog():
    async with async_session() as session:
        q = await session.execute(select(Category).where(Category.name == "other"))
        category = q.scalar_one_or_none()
        if category is None:
            category = Category(name="other")
            session.add(category)
            await session.flush()

        for sku, name, price, stock in PRODUCTS:
            q = await session.execute(select(Product).where(Product.sku == sku))
            if q.scalar_one_or_none() is not None:
                print(f"skip {sku}: exists")
                continue
            product = Product(sku=sku, name=name, price=price, stock_quantity=stock,
                              is_in_stock=stock > 0, category_id=category.id)
            session.add(product)
            await session.flush()
            for v_sku, v_name, v_price, v_stock in VARIANTS.get(sku, []):
                session.add(ProductVariant(product_id=product.id, sku=v_sku, name=v_name, price=v_price,
                                           stock_quantity=v_stock, is_in_stock=v_stock > 0))
            print(f"added {sku}")

        q = await session.execute(select(Coupon).where(Coupon.code == "WELCOME10"))
        if q.scalar_one_or_none() is None:
            session.add(Coupon(
                code="WELCOME10",
                description="10% off the first order",
                discount_type=DiscountType.PERCENTAGE.value,
                discount_value=10,
                maximum_discount=500_000,
                usage_limit=100,
                valid_from=now(),
                valid_until=now() + timedelta(days=90),
                applicable_to=CouponScope.ALL.value,
            ))
            print("added coupon WELCOME10")

        await session.commit()
    print("Done.")

if __name__ == "__main__":
    asyncio.run(seed_catalog())
