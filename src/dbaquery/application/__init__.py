"""
Application layer package.

Use cases built on the infrastructure layer:
- SMO version discovery
- Query dispatch across instances and databases
"""

from dbaquery.application.query_dispatcher import QueryDispatcher, invoke_query
from dbaquery.application.smo_inventory import SmoInventoryService, get_management_object

__all__ = [
    "QueryDispatcher",
    "SmoInventoryService",
    "get_management_object",
    "invoke_query",
]
