"""Application-wide constants for the TeachTape platform."""

from __future__ import annotations

BRAND_NAME = "TeachTape"
API_VERSION = "1.0.0"

# Film review turnaround applied when a listing does not carry its own
DEFAULT_TURNAROUND_HOURS = 48

# Review constraints
MIN_RATING = 1
MAX_RATING = 5
MAX_REVIEW_COMMENT_LENGTH = 500

# Platform fee bounds (percent)
PLATFORM_FEE_MIN_PERCENTAGE = 0.0
PLATFORM_FEE_MAX_PERCENTAGE = 30.0
BUYER_FEE_MAX_FLAT_CENTS = 2000

# Hosts accepted for delivered film review documents
REVIEW_DOCUMENT_HOSTS = (
    "docs.google.com",
    "drive.google.com",
    "dropbox.com",
    "www.dropbox.com",
    "dl.dropboxusercontent.com",
    "notion.so",
    "www.notion.so",
    "loom.com",
    "www.loom.com",
    "youtube.com",
    "www.youtube.com",
    "youtu.be",
    "vimeo.com",
    "www.vimeo.com",
)

SYSTEM_WELCOME_MESSAGE = "Session booked! You can now chat to coordinate details."
