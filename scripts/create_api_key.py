"""Create a marketplace user (if needed) and issue an API key bound to it."""
from __future__ import annotations

import argparse

from sqlalchemy import select

from app.db import get_sessionmaker, init_engine
from app.models import ApiKey, User, UserRole
from app.utils.apikey import gen_key


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("--role", choices=[role.value for role in UserRole], default=UserRole.CLIENT.value)
    parser.add_argument("--full-name", default=None)
    args = parser.parse_args()

    init_engine()
    db = get_sessionmaker()()

    try:
        user = db.scalars(select(User).where(User.username == args.username)).first()
        if user is None:
            user = User(
                username=args.username,
                email=args.email,
                full_name=args.full_name,
                role=UserRole(args.role),
            )
            db.add(user)
            db.flush()

        raw_key, prefix, key_hash = gen_key()
        api_key = ApiKey(
            name=f"{user.username}-{prefix}",
            prefix=prefix,
            key_hash=key_hash,
            user_id=user.id,
            is_active=True,
        )
        db.add(api_key)
        db.commit()

        print("API key created for", user.username, f"(user id {user.id}, role {user.role.value})")
        print("Use it in your Authorization header:")
        print(f"    Authorization: Bearer {raw_key}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
