import asyncio
import os
from dotenv import load_dotenv
from sqlmodel import select

from storefront.auth.utils import create_access_token
from storefront.common.utils import normalize_mobile
from storefront.db.connection import async_session
from storefront.schema.full_schema import Users, UserRole
# -------------------------------------------------------------------

load_dotenv()


async def create_admin():
    admin_phone = normalize_mobile(os.environ.get("ADMIN_PHONE"))
    admin_email = os.environ.get("ADMIN_EMAIL")
    admin_name = os.environ.get("ADMIN_NAME", "Admin")

    if not admin_phone and not admin_email:
        raise SystemExit("Set ADMIN_PHONE or ADMIN_EMAIL environment variables before running")

    async with async_session() as session:
        # 1) find or create user
        cond = Users.phone == admin_phone if admin_phone else Users.email == admin_email
        q = await session.execute(select(Users).where(cond))
        user = q.scalar_one_or_none()

        if not user:
            user = Users(phone=admin_phone, email=admin_email, first_name=admin_name, role=UserRole.ADMIN.value)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            print(f"Created admin user id={user.id}")
        elif user.role not in (UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value):
            user.role = UserRole.ADMIN.value
            await session.commit()
            print(f"Promoted user id={user.id} to admin")
        else:
            print(f"Found existing admin id={user.id}")

        # 2) token for calling the admin routes from tooling
        token = create_access_token(user.id, [user.role], expires_dur=24 * 60)
        print(f"Access token (24h): {token}")

    print("Done.")

if __name__ == "__main__":
    asyncio.run(create_admin())
