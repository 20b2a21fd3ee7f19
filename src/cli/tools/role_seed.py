"""
One-shot role seeder for compose deployments.

Expects env:
- PGHOST, PGPORT, PGDATABASE, PGUSER, PG_PASSWORD
- SHOPKEEPER_AUTH_CONFIG (optional): YAML with an auth.roles section

Actions:
1) Ensure the users and roles tables exist.
2) Upsert the registry's role definitions.
Exits 0 on success, non-zero on failure.
"""

import sys
from typing import Optional

from src.utils.postgres_service_factory import PostgresServiceFactory
from src.utils.rbac.registry import RBACRegistry, get_registry
from src.utils.role_service import RoleService


def seed(registry: RBACRegistry, roles: RoleService) -> int:
    print("[role-seed] Seeding roles:", ", ".join(registry.role_names))
    count = roles.upsert_roles(registry.roles)
    print(f"[role-seed] {count} roles upserted")
    return count


def seed_entry(config_path: Optional[str] = None, password: Optional[str] = None) -> int:
    registry = get_registry(config_path, force_reload=True)
    factory = PostgresServiceFactory.from_env(password_override=password)
    try:
        factory.user_service.ensure_schema()
        factory.role_service.ensure_schema()
        return seed(registry, factory.role_service)
    finally:
        factory.close()


def main():
    seed_entry()
    print("Role seeding completed")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:
        print(f"Role seeding failed: {exc}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
