"""
Spendly - Source Package

Offline personal expense tracking for Indian rupees: expenses, income,
monthly budgets with 75% / 100% alerts, and recurring transactions.

DESIGN PRINCIPLES:
1. Money is integer paise, end to end
2. Fail early, fail visibly
3. No silent corrections
4. Every alert fires once per budget and threshold
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Spendly Team"
