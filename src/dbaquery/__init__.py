"""
dbaquery - SQL Server query dispatch and SMO discovery.

Usage:
    # CLI
    dbaquery query SQL01 SQL02 --query "SELECT @@VERSION"
    dbaquery smo localhost --version 16

    # Programmatic
    from dbaquery import invoke_query, get_management_object

    outcome = invoke_query("SQL01", query="SELECT name FROM sys.databases")
    versions = get_management_object(["localhost"], version="16")
"""

__version__ = "0.1.0"

from dbaquery.application import get_management_object, invoke_query

__all__ = ["get_management_object", "invoke_query", "__version__"]
