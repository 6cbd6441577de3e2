"""
Stock Kernel

An append-only stock ledger for raw leather, raw materials and finished
products with:
- Write-once worker submissions (status is the only mutable field)
- Append-only removal journal with compensating reversals
- Net stock derived from both stores on every read
- Per-key serialized removals (no overdraft)
- Full auditability via hash chain
"""

__version__ = "0.1.0"
