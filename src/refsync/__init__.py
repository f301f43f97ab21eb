"""
Reference data synchronization between two environments of a hosted
relational data service.

Components:
- compare: structural record and association diff for audit reports
- migrate: multi-phase migration (flat, reference, state, many-to-many)
- service: remote record service clients
- report: report generation and export
- cli: command-line interface (compare, migrate, report)

Usage:
    from refsync.compare import compare_records
    from refsync.migrate import Migrator
"""

__version__ = "1.0.0"
__all__ = ["compare", "migrate", "service", "report", "config"]
