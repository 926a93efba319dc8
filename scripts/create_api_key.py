"""Create an API key for a customer or an administrator."""
from __future__ import annotations

import argparse

from app.db import session_scope
from app.models import ApiKey, ApiScope, User
from app.utils.apikey import gen_key


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--name", required=True, help="Unique label for the key")
    parser.add_argument("--scope", choices=[scope.value for scope in ApiScope], default=ApiScope.customer.value)
    parser.add_argument("--user-id", type=int, default=None, help="User the key acts for")
    args = parser.parse_args()

    with session_scope() as db:
        if args.user_id is not None and db.get(User, args.user_id) is None:
            raise SystemExit(f"User {args.user_id} does not exist")

        raw, prefix, key_hash = gen_key()
        api_key = ApiKey(
            name=args.name,
            prefix=prefix,
            key_hash=key_hash,
            scope=ApiScope(args.scope),
            is_active=True,
            user_id=args.user_id,
        )
        db.add(api_key)
        db.flush()

        print("==========================================")
        print("API key created; it is shown only once:")
        print(f"    Authorization: Bearer {raw}")
        print(f"(DB id: {api_key.id}, scope: {api_key.scope.value}, user: {api_key.user_id})")
        print("==========================================")


if __name__ == "__main__":
    main()
