"""
Welfare Kernel - employee welfare-benefit administration core.

Entitlement/quota engine and claim approval workflow with:
- Per-request, per-fiscal-year and lifetime caps
- Two-stage (front-line, then final) approval
- Quota ledger mutated exactly once per approved claim
- Append-only claim event log
- Concurrency-safe final approval
"""

__version__ = "0.1.0"
