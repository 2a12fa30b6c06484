"""Storefront cart, address book and order engines exposed over MCP and HTTP."""

__version__ = "0.1.0"
