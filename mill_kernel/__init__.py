"""
Mill Kernel - ledger and stock consistency engine for a flour mill.

Posts every sale, purchase, payment and production run as matched
double-entry records while keeping physical stock synchronized:
- Atomic business events (all postings, invoice rows and stock moves or none)
- Non-negative stock via conditional updates
- Per-buyer credit limits under a row lock
- Idempotent, retryable event recording
"""

__version__ = "0.1.0"
