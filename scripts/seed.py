"""Seed sample customers, orders and API keys for local development."""
from __future__ import annotations

from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

from app import models
from app.config import get_settings
from app.db import create_all, session_scope
from app.utils.apikey import hash_key


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    create_all()
    with session_scope() as session:
        alice = models.User(name="Alice", email="alice@example.com", phone="+919800000001")
        admin = models.User(name="Admin", email="admin@example.com")
        session.add_all([alice, admin])
        session.flush()

        session.add_all(
            [
                models.Order(user_id=alice.id, total_amount=Decimal("500.00")),
                models.Order(user_id=alice.id, total_amount=Decimal("1299.99")),
                models.ApiKey(
                    name="dev-customer-key",
                    prefix="dev_customer",
                    key_hash=hash_key("customer-dev-001"),
                    scope=models.ApiScope.customer,
                    user_id=alice.id,
                ),
                models.ApiKey(
                    name="dev-admin-key",
                    prefix="dev_admin",
                    key_hash=hash_key("admin-dev-001"),
                    scope=models.ApiScope.admin,
                    user_id=admin.id,
                ),
            ]
        )
    print("Seed data inserted. Customer key: customer-dev-001, admin key: admin-dev-001")


if __name__ == "__main__":
    main()
