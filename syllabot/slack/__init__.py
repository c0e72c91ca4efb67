"""Slack integration: Block Kit builders and the interaction router."""
