#!/usr/bin/env python3
"""
Todo API — management commands

Usage:
    python -m todolist.cli init-db
    python -m todolist.cli create-admin --username root --password 'S3cure!Pw' \
        --name "Site Admin" --email admin@example.org --phone +5511999990000 --tax-id 52998224725
    python -m todolist.cli seed-todos --username root --count 20 --overdue 5
"""

import argparse
import asyncio
import logging
import random
from datetime import timedelta

from todolist import config
from todolist.database import close_db, get_db_context, init_db
from todolist.entities import Todo, utcnow
from todolist.repositories.sql import SqlPersonRepository, SqlTodoRepository, SqlUserRepository
from todolist.schemas import RegisterRequest
from todolist.services import UserSecurityService
from todolist.usecases import RegisterUser
from todolist.valueobjects import Priority, UserRole

logger = logging.getLogger("todolist.cli")

SAMPLE_TITLES = [
    "Review pull requests", "Write release notes", "Plan sprint", "Update dependencies",
    "Prepare demo", "Fix flaky test", "Answer support tickets", "Refactor billing module",
    "Draft architecture proposal", "Renew certificates",
]
SAMPLE_TAGS = ["work", "urgent", "backend", "frontend", "ops", "docs", "meeting"]


async def create_admin(args) -> None:
    async with get_db_context() as db:
        people, users = SqlPersonRepository(db), SqlUserRepository(db)
        register = RegisterUser(people, users, UserSecurityService(users, users))
        user = await register.execute(RegisterRequest(
            name=args.name,
            email=args.email,
            phone=args.phone,
            tax_id=args.tax_id,
            username=args.username,
            password=args.password,
        ))
        user.change_role(UserRole.ADMIN)
        await users.save(user)
    logger.info(f"Administrator {user.username} created (id={user.id})")


async def seed_todos(args) -> None:
    rng = random.Random(args.seed)
    now = utcnow()
    async with get_db_context() as db:
        user = await SqlUserRepository(db).find_by_username(args.username)
        todos = SqlTodoRepository(db)
        for i in range(args.count):
            todo = Todo.create(
                user.id,
                rng.choice(SAMPLE_TITLES),
                priority=rng.choice(list(Priority)),
                due_date=now + timedelta(days=rng.randint(1, 30)),
                now=now,
            )
            for tag in rng.sample(SAMPLE_TAGS, rng.randint(0, 3)):
                todo.add_tag(tag)
            if i < args.overdue:
                todo.set_due_date_unchecked(now - timedelta(days=rng.randint(1, 10)))
            await todos.save(todo)
    logger.info(f"Seeded {args.count} todos for {args.username} ({args.overdue} overdue)")


async def _run(args) -> None:
    await init_db()
    try:
        if args.command == "create-admin":
            await create_admin(args)
        elif args.command == "seed-todos":
            await seed_todos(args)
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description=f"{config.APP_NAME} management commands")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create missing tables")

    admin = commands.add_parser("create-admin", help="Register a user with the admin role")
    admin.add_argument("--username", required=True)
    admin.add_argument("--password", required=True)
    admin.add_argument("--name", required=True)
    admin.add_argument("--email", required=True)
    admin.add_argument("--phone", required=True)
    admin.add_argument("--tax-id", required=True, help="CPF or CNPJ")

    seed = commands.add_parser("seed-todos", help="Create sample todos for an existing user")
    seed.add_argument("--username", required=True)
    seed.add_argument("--count", type=int, default=20, help="Number of todos")
    seed.add_argument("--overdue", type=int, default=0, help="How many of them are already overdue")
    seed.add_argument("--seed", type=int, default=42, help="Random seed")

    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
    )
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
