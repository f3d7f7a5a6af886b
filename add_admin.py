import asyncio
import sys
from sqlalchemy import select
from editlock.config import get_settings
from editlock.database import async_session_maker, init_db
from editlock.models import Admin, User
from editlock.utils.auth import issue_session_token


async def add_admin(username: str, display_name: str = None):
    """Create (or promote) a user to admin and print a session token for it"""
    await init_db()
    settings = get_settings()

    async with async_session_maker() as session:
        result = await session.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()

        if not user:
            user = User(username=username, display_name=display_name)
            session.add(user)
            await session.flush()
            print(f"Created user {username} with ID: {user.id}")

        result = await session.execute(select(Admin).where(Admin.user_id == user.id))
        if result.scalar_one_or_none():
            print(f"User {username} is already an admin")
        else:
            session.add(Admin(user_id=user.id))
            print(f"Added admin with ID: {user.id}")

        await session.commit()

        print(f"Session token: {issue_session_token(user.id, settings.secret_key)}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python add_admin.py <username> [display name]")
        sys.exit(1)
    asyncio.run(add_admin(sys.argv[1], " ".join(sys.argv[2:]) or None))
