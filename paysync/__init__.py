"""
paysync: incremental sync and webhook ingestion for payment connectors.
"""

__version__ = "0.1.0"
