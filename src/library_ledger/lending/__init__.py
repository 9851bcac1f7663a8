"""
Lending core: the loan lifecycle and overdue detection.

- ``LoanLifecycleManager`` borrows and returns copies atomically
- ``OverdueScanner`` applies the BORROWED -> OVERDUE rule
- ``OverdueSweeper`` runs the scanner on a timer
"""

from .manager import LoanLifecycleManager
from .overdue import OverdueScanner, OverdueSweeper

__all__ = [
    "LoanLifecycleManager",
    "OverdueScanner",
    "OverdueSweeper",
]
