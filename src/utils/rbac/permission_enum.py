"""
RBAC vocabulary - the closed sets of modules and actions a permission entry may name.

Both enums subclass ``str`` so members compare equal to their string values
and can be used anywhere a plain string is expected without calling .value.

Usage:
    from src.utils.rbac.permission_enum import Module, Action

    @check_permission(Module.ORDERS, Action.UPDATE)
    def update_order(id): ...
"""

from enum import Enum


class Module(str, Enum):
    """Domain areas that permissions are granted on."""

    ORDERS = "orders"
    INVENTORY = "inventory"
    CUSTOMERS = "customers"
    SUPPLIERS = "suppliers"
    ACCOUNTING = "accounting"
    REPORTS = "reports"
    USERS = "users"
    SETTINGS = "settings"
    PRODUCTS = "products"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class ResourceType(str, Enum):
    """Record kinds that carry owner-like reference fields."""

    ORDER = "order"
    CUSTOMER = "customer"
    SALE = "sale"
    JOURNAL_ENTRY = "journal_entry"


ADMIN_ROLE = "admin"

ALL_ACTIONS = [action.value for action in Action]
