"""GitHub webhook ingestion with templated agent dispatch.

This package provides:
- Webhook signature verification and payload normalization
- An append-only audit log of events, rendered documents and executions
- Repository-specific and generic instruction templates
- Background execution of an external agent on rendered documents
"""

__version__ = "1.0.0"
