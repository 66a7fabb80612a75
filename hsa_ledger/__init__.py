"""
HSA Ledger

A custodial ledger for health-savings accounts: accounts hold a balance,
own payment cards, and authorize card transactions against a fixed set of
IRS-qualified merchant categories. Interest accrues on demand.
"""

__version__ = "1.0.0"
