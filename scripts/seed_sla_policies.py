#!/usr/bin/env python3
"""
Seed SLA Policies
=================

Loads the SLA configuration YAML and inserts its policies into an empty
policy table, then prints what each entity kind resolves to.

Usage:
    DATABASE_URL=sqlite+aiosqlite:///./opsdesk.db python scripts/seed_sla_policies.py [config.yaml]
"""

import asyncio
import sys
from pathlib import Path

from opsdesk.config import settings, VALID_ENTITY_KINDS
from opsdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context
)
from opsdesk.sla.infrastructure import (
    SLAConfigManager, SQLAlchemySlaPolicyRepository, seed_policies
)


async def main():
    """Seed policies and list the active set."""
    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else settings.sla_config_path

    config = SLAConfigManager().load(config_path)
    print(f"Loaded {len(config.policies)} policies from {config_path}")

    init_database()
    await create_tables()

    try:
        async with get_session_context() as session:
            inserted = await seed_policies(session, config)

        if inserted:
            print(f"Inserted {inserted} policies")
        else:
            print("Policy table already populated, nothing inserted")

        async with get_session_context() as session:
            repo = SQLAlchemySlaPolicyRepository(session)
            for entity_kind in VALID_ENTITY_KINDS:
                print("\n" + "=" * 60)
                print(f"{entity_kind} policies")
                print("=" * 60)
                for policy in await repo.list_active(entity_kind):
                    scope = f"{policy.priority or 'any priority'} / {policy.category or 'any category'}"
                    print(f"  {policy.target_hours:>6.1f}h  {scope:<32} {policy.name}")
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(main())
