"""SyllaBot: Slack modals for Monday.com tasks and HubSpot notes.

WHY: Customer-success staff live in Slack, but their tasks live on Monday
boards and their notes live on HubSpot tickets and deals. SyllaBot lets
them create both from a slash command without leaving the channel.

HOW: Four layers: API adapters (HubSpot, Monday, Zapier), a core of pure
state (metadata codec, dependent-selection state machine, session store),
Block Kit builders, and the Slack router served from a FastAPI app that
also accepts Zapier's "note created" callback.

RULES:
- All cross-request state lives in the modal's private_metadata or in the
  in-memory SessionStore; nothing is persisted to disk
- Adapters are async (httpx); Bolt listeners are sync and bridge with
  asyncio.run()
- Every upstream failure ends in a message to the requesting user
"""

__version__ = "0.1.0"
