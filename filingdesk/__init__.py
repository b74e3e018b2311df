"""
FilingDesk - Compliance Workflow Engine

Tracks statutory compliance work (VAT returns, annual accounts,
corporation tax) through its operational stages for an accounting firm.
"""

__version__ = "1.0.0"
