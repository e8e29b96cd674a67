#!/usr/bin/env python3
"""
Seed a development database with a few users and conversations.

Creates alice, bob and charlie (password: password123), a private
conversation between alice and bob with three messages, and a group with
all three. Users that already exist are reused, so the script can be re-run.

Usage:
    python scripts/seed_chat_data.py
"""

import argparse
import asyncio
import logging

from fastapi_users.db import SQLAlchemyUserDatabase

from chatline.auth_config import get_user_manager
from chatline.db import async_session_maker
from chatline.models import User
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.participant_repository import ParticipantRepository
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.user import UserCreate
from chatline.services.conversation_service import ConversationService
from chatline.services.message_service import MessageService
from chatline.services.migration_service import run_migrations

logger = logging.getLogger("seed_chat_data")

DEFAULT_PASSWORD = "password123"
SEED_USERS = ["alice", "bob", "charlie"]
PRIVATE_MESSAGES = [
    ("alice", "Hey Bob, are we still on for Friday?"),
    ("bob", "Yes! 7pm at the usual place."),
    ("alice", "Perfect, see you there."),
]


async def get_or_create_user(session, username: str) -> User:
    user_repo = UserRepository(session)
    existing = await user_repo.get_user_by_username(username)
    if existing:
        logger.info(f"User {username} already exists, reusing it.")
        return existing

    user_manager_gen = get_user_manager(SQLAlchemyUserDatabase(session, User))
    user_manager = await anext(user_manager_gen)
    try:
        user = await user_manager.create(
            UserCreate(
                email=f"{username}@example.com",
                password=DEFAULT_PASSWORD,
                username=username,
            )
        )
    finally:
        await user_manager_gen.aclose()
    logger.info(f"Created user {username} ({user.id}).")
    return user


async def seed() -> None:
    async with async_session_maker() as session:
        users = {name: await get_or_create_user(session, name) for name in SEED_USERS}
        user_ids = {name: user.id for name, user in users.items()}

        conv_repo = ConversationRepository(session)
        conversations = ConversationService(
            conversation_repository=conv_repo,
            participant_repository=ParticipantRepository(session),
            message_repository=MessageRepository(session),
            user_repository=UserRepository(session),
        )
        messages = MessageService(
            message_repository=conversations.msg_repo,
            participant_repository=conversations.part_repo,
            conversation_repository=conv_repo,
            conversation_service=conversations,
        )

        private, created = await conversations.create_or_get_private_conversation(
            users["alice"], user_ids["bob"]
        )
        private_id = private.id
        if created:
            for sender, text in PRIVATE_MESSAGES:
                await messages.send_message(private_id, users[sender], text=text)
            logger.info(f"Seeded private conversation {private_id}.")
        else:
            logger.info(f"Private conversation {private_id} already exists, skipping.")

        group, _ = await conversations.create_group_conversation(
            users["alice"],
            [user_ids["bob"], user_ids["charlie"]],
            "Friday plans",
            text="Charlie, want to join us?",
        )
        logger.info(f"Seeded group conversation {group.id}.")


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the chat database")
    parser.add_argument(
        "--skip-migrations",
        action="store_true",
        help="Do not upgrade the schema before seeding",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    async def run() -> None:
        if not args.skip_migrations:
            await run_migrations()
        await seed()

    asyncio.run(run())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
