"""Seed default accounts so a fresh deployment can log in.

┌──────────┬──────────────┬─────────┐
│ Username │ Password     │ Role    │
├──────────┼──────────────┼─────────┤
│ admin    │ admin123     │ admin   │
│ cashier  │ cashier123   │ cashier │
└──────────┴──────────────┴─────────┘

Change both passwords after the first login.
"""

import logging

from app.models.user import UserRole
from app.repositories.base import UserRepository

logger = logging.getLogger(__name__)

DEFAULT_USERS: list[dict] = [
    {
        "username": "admin",
        "email": "admin@pos.com",
        "password": "admin123",
        "first_name": "Admin",
        "last_name": "User",
        "role": UserRole.ADMIN,
    },
    {
        "username": "cashier",
        "email": "cashier@pos.com",
        "password": "cashier123",
        "first_name": "Cashier",
        "last_name": "User",
        "role": UserRole.CASHIER,
    },
]


async def seed_default_users(users: UserRepository) -> int:
    """Create any default account whose username is not taken yet. Returns the number created."""
    created = 0
    for data in DEFAULT_USERS:
        if await users.find_by_username(data["username"]):
            continue
        await users.create(data)
        created += 1
        logger.info("Seeded default user %s (%s)", data["username"], data["role"].value)
    return created
