"""
Shared utilities for refdata-sync

Provides:
- logging: console/JSON log output with secret masking
- retry: exponential backoff for remote calls
- metrics: Prometheus metrics server and run-level metrics
- tracing: OpenTelemetry tracing setup and helpers
- vault_client: HashiCorp Vault integration for credentials
"""

__version__ = "1.0.0"
__all__ = ["logging", "retry", "metrics", "tracing", "vault_client"]
