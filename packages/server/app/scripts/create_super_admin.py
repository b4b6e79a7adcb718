"""
Script to create (or promote) a Super Admin account.

Super Admins are platform operators: they hold no membership and pass every
organization check. There is no HTTP route that creates one.
"""

import argparse
import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.database import async_session_factory, build_session_factory, engine
from app.models.user import User
from app.services import users as user_service
from cayco_shared.schemas.common import SystemRole


async def create_super_admin(
    email: str,
    password: str,
    first_name: str = "",
    last_name: str = "",
    *,
    bind: AsyncEngine | None = None,
) -> User:
    session_factory = build_session_factory(bind) if bind else async_session_factory

    async with session_factory() as session:
        existing = [
            u
            for u in await user_service.find_users_by_email(session, email)
            if u.global_role == SystemRole.SUPER_ADMIN.value
        ]
        if existing:
            user = existing[0]
            user_service.set_password(user, password)
            user.is_active = True
            print(f"Super Admin {user.email} already exists; password updated.")
        else:
            user = await user_service.create_user(
                session,
                email=email,
                password=password,
                global_role=SystemRole.SUPER_ADMIN.value,
                first_name=first_name,
                last_name=last_name,
            )
            print(f"Created Super Admin: {user.email}")

        session.add(user)
        await session.commit()
        return user


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a Super Admin user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--first-name", default="", help="First name")
    parser.add_argument("--last-name", default="", help="Last name")

    args = parser.parse_args()

    asyncio.run(
        create_super_admin(args.email, args.password, args.first_name, args.last_name, bind=engine)
    )
