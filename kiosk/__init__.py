"""In-memory multi-tenancy model: accounts, spaces, quotas, templates and RBAC authorization."""

__version__ = "0.1.0"