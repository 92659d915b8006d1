"""
Sales Import Reconciliation & Financial Aggregation Service
"""

__version__ = "1.0.0"
