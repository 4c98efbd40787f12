import os
import json
import base64
import logging

import gspread
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as OAuthCredentials
from google.auth.transport.requests import Request as GoogleRequest
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

# ─── Google Token/Scopes Config ──────────────────────────────────────────────
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

GOOGLE_TOKEN_PATH = os.environ.get("GOOGLE_TOKEN_PATH", os.path.join(os.getcwd(), "token.json"))
SERVICE_ACCOUNT_FILE = os.environ.get("GOOGLE_SERVICE_ACCOUNT_FILE", "").strip()


def bootstrap_token_from_env() -> bool:
    """
    Accept GOOGLE_TOKEN_JSON_B64 (base64 of token.json) or GOOGLE_TOKEN_JSON (raw JSON)
    and write token.json so the file loader below can pick it up.
    """
    raw = None
    src = None

    b64 = os.environ.get("GOOGLE_TOKEN_JSON_B64", "").strip()
    if b64:
        try:
            raw = base64.b64decode(b64).decode("utf-8")
            src = "GOOGLE_TOKEN_JSON_B64"
        except Exception as e:
            logger.warning("Failed to decode GOOGLE_TOKEN_JSON_B64: %s", e)

    if not raw:
        val = os.environ.get("GOOGLE_TOKEN_JSON", "").strip()
        if val:
            raw = val
            src = "GOOGLE_TOKEN_JSON"

    if not raw:
        logger.info("No GOOGLE_TOKEN_JSON(_B64) provided; skipping token bootstrap.")
        return False

    try:
        info = json.loads(raw)
        with open(GOOGLE_TOKEN_PATH, "w", encoding="utf-8") as f:
            f.write(raw)
        logger.info("token.json written from %s (refresh_token=%s)", src, bool(info.get("refresh_token")))
        return True
    except (ValueError, OSError) as e:
        logger.warning("Failed to write token.json from env: %s", e)
        return False


def _oauth_from_info(info):
    # If the token already lists scopes, do not override them (avoids invalid_scope)
    if info.get("scopes"):
        creds = OAuthCredentials.from_authorized_user_info(info)
    else:
        creds = OAuthCredentials.from_authorized_user_info(info, scopes=GOOGLE_SCOPES)
    if not creds.valid and getattr(creds, "refresh_token", None):
        try:
            creds.refresh(GoogleRequest())
        except Exception as e:
            # API calls refresh again on their own; keep the creds
            logger.warning("Token refresh failed (returning creds anyway): %r", e)
    return creds


def load_google_creds():
    """
    Load Google credentials from token.json (GOOGLE_TOKEN_PATH, which
    bootstrap_token_from_env fills from the env vars), falling back to a
    service account key file (GOOGLE_SERVICE_ACCOUNT_FILE).
    Returns a credentials object or None.
    """
    if os.path.exists(GOOGLE_TOKEN_PATH):
        try:
            with open(GOOGLE_TOKEN_PATH, "r", encoding="utf-8") as f:
                return _oauth_from_info(json.load(f))
        except Exception as e:
            logger.error("FILE token could not build OAuthCredentials: %r", e)

    if SERVICE_ACCOUNT_FILE and os.path.exists(SERVICE_ACCOUNT_FILE):
        return service_account.Credentials.from_service_account_file(
            SERVICE_ACCOUNT_FILE, scopes=GOOGLE_SCOPES
        )

    return None


def get_google_credentials():
    bootstrap_token_from_env()
    creds = load_google_creds()
    if not creds:
        raise RuntimeError(
            "No Google credentials. Set GOOGLE_TOKEN_JSON, provide token.json, "
            "or point GOOGLE_SERVICE_ACCOUNT_FILE at a service account key."
        )
    return creds


def open_spreadsheet(spreadsheet_id, creds=None):
    """Authorize gspread and open the spreadsheet by key."""
    creds = creds or get_google_credentials()
    return gspread.authorize(creds).open_by_key(spreadsheet_id)


def get_drive_service(creds=None):
    creds = creds or get_google_credentials()
    return build("drive", "v3", credentials=creds, cache_discovery=False)
