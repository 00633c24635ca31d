"""
PnLSight: P&L file ingestion and KPI derivation.
"""

__version__ = "0.1.0"
