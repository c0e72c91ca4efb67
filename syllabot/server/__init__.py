"""HTTP surface: Slack endpoints, the Zapier callback, and health checks."""
