# agentid/ledger/__init__.py
from .credits import CreditLedger

__all__ = ["CreditLedger"]
