"""
Script to create a local user (and optionally an organization they own) for
local testing.

    python -m taskhub_server.scripts.create_local_user --email a@b.c --password secret123 --org "Acme"
"""

import argparse
import asyncio
from typing import Optional

from taskhub_server.core.database import get_session_context, init_db
from taskhub_server.services import organizations as org_service
from taskhub_server.services import users as user_service
from taskhub_shared.schemas.auth import RegisterRequest
from taskhub_shared.schemas.organizations import OrgCreateRequest


async def create_user(email: str, password: str, org_title: Optional[str] = None) -> None:
    await init_db()

    async with get_session_context() as session:
        user = await user_service.get_user_by_email(session, email)
        if user:
            print(f"User {email} already exists.")
        else:
            user = await user_service.register_user(
                session, RegisterRequest(email=email, password=password, name=email.split("@")[0])
            )
            print(f"Created user: {email}")

        if org_title:
            org = await org_service.create_org(session, user.id, OrgCreateRequest(title=org_title))
            print(f"Created organization {org.title!r} owned by {email}; join code: {org.join_code}")

    print("Done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--org", default=None, help="Also create an organization owned by the user")

    args = parser.parse_args()

    asyncio.run(create_user(args.email, args.password, args.org))
