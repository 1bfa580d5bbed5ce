"""
Studio Ledger

Customer and supplier balances for a studio business manager, with
voucher posting and chronological running-balance account statements.
All money uses Decimal and every balance change is audited.
"""

__version__ = "1.0.0"
