"""Configuration constants, timing budgets, and .env loading.

WHY: SyllaBot talks to four services (Slack, HubSpot, Monday, Zapier) and
not every workflow needs every one of them. Tokens and webhook URLs are
therefore loaded lazily, at the point of use, so a missing Monday token
never stops /hubnote from working.

HOW: python-dotenv loads the .env file on import. Constants are plain
module-level values. Each load_*() function reads one setting and raises
ConfigError with an actionable message when it is absent.

RULES:
- Nothing here raises at import time
- load_*() raises ConfigError (a ValueError) with the env var name in it
- Timing budgets stay below Slack's 3 second acknowledgement deadline
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the process is started)
load_dotenv()


class ConfigError(ValueError):
    """Raised when a required setting is missing.

    WHY: Missing configuration must surface as a specific message to the
    user who triggered the workflow, not as a crash at startup.
    """


# ---------------------------------------------------------------------------
# Upstream endpoints
# ---------------------------------------------------------------------------

HUBSPOT_BASE_URL = os.getenv("HUBSPOT_BASE_URL", "https://api.hubapi.com")
MONDAY_API_URL = os.getenv("MONDAY_API_URL", "https://api.monday.com/v2")

# HubSpot property names (confirmed against the portal)
HS_PIPELINE_PROP = "pipeline"
HS_TICKET_STAGE_PROP = "hs_pipeline_stage"
HS_DEAL_STAGE_PROP = "dealstage"

# ---------------------------------------------------------------------------
# Timing budgets (seconds)
# ---------------------------------------------------------------------------

HTTP_TIMEOUT_S = float(os.getenv("HTTP_TIMEOUT_S", "10"))
RECORD_SEARCH_TIMEOUT_S = float(os.getenv("RECORD_SEARCH_TIMEOUT_S", "2.5"))
MONDAY_CACHE_TTL_S = 60.0
HUBSPOT_CACHE_TTL_S = 10 * 60.0
SESSION_TTL_S = 15 * 60.0
SESSION_SWEEP_INTERVAL_S = 300.0

# ---------------------------------------------------------------------------
# Slack transport limits
# ---------------------------------------------------------------------------

MAX_OPTIONS = 100
OPTION_LABEL_MAX = 75
RECORD_SEARCH_LIMIT = 50
FILES_LIST_LIMIT = 50
METADATA_MAX_CHARS = 3000

# ---------------------------------------------------------------------------
# Monday labels (must match the board columns exactly)
# ---------------------------------------------------------------------------

STATUS_LABELS = [
    "Not Started",
    "Working on it",
    "Blocked",
    "Pending Review",
    "Done",
]

PRIORITY_LABELS = ["Low", "Medium", "High"]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "3000"))


# ---------------------------------------------------------------------------
# Lazy loaders
# ---------------------------------------------------------------------------


def _require(name: str, hint: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigError("{} is missing. {}".format(name, hint))
    return value


def load_slack_bot_token() -> str:
    return _require("SLACK_BOT_TOKEN", "Set it to the bot's xoxb- token.")


def load_slack_signing_secret() -> str:
    return _require(
        "SLACK_SIGNING_SECRET",
        "Copy it from the Slack app's Basic Information page.",
    )


def load_monday_token() -> str:
    return _require("MONDAY_API_TOKEN", "Add it to the env vars and redeploy.")


def load_hubspot_token() -> str:
    return _require(
        "HUBSPOT_PRIVATE_APP_TOKEN",
        "Dynamic HubSpot lookups need a private app token.",
    )


def hubspot_configured() -> bool:
    """Return True when v2 (dynamic lookup) forms can run."""
    return bool(os.getenv("HUBSPOT_PRIVATE_APP_TOKEN", "").strip())


def load_task_webhook_url() -> str:
    return _require("ZAPIER_WEBHOOK_URL", "Add it to the env vars and redeploy.")


def load_note_webhook_url() -> str:
    return _require(
        "ZAPIER_HUBNOTE_WEBHOOK_URL", "Add it to the env vars and redeploy."
    )


def load_attach_webhook_url() -> str:
    return _require(
        "ZAPIER_HUBNOTE_ATTACH_WEBHOOK_URL",
        "Set it to enable file attachment routing.",
    )


def load_callback_secret() -> str:
    """Return the optional Zapier callback secret, or "" when unset."""
    return os.getenv("ZAPIER_HUBNOTE_SECRET", "").strip()
