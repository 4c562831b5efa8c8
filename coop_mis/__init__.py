"""
CoopMIS - Credit Cooperative Management Information System

Member registry, loan origination and servicing, savings accounts,
transaction ledger, reporting and audit trail for a credit cooperative.
"""

__version__ = "1.0.0"
