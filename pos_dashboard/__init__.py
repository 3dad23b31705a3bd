"""
POS Dashboard

Dashboard metrics pipeline for the retail point-of-sale admin console.
"""

__version__ = "1.0.0"
