"""
Order-history ingestion.

Modules
-------
order_import : JSON seed file (customers, products, orders) → SQLite.
"""
