"""
Workload Kernel

Persistence, read models and shared infrastructure for the machine
workload and billing core:
- Derived allocation state recomputed from production events
- Append-only formula snapshots
- Typed errors and structured logging
- Locked sequence counters for bill numbering
"""

__version__ = "0.1.0"
