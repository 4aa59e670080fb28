"""HTTP surface: vendor webhooks and health checks."""
