# generate_token.py
"""
One-off: run the installed-app OAuth flow and write token.json for the
dashboard and the watcher (Sheets + Drive).

    GOOGLE_CLIENT_SECRETS=client_secret.json python generate_token.py
"""
import os

from dotenv import load_dotenv
from google_auth_oauthlib.flow import InstalledAppFlow

from google_clients import GOOGLE_SCOPES, GOOGLE_TOKEN_PATH


def main():
    load_dotenv()
    secrets_file = os.environ.get("GOOGLE_CLIENT_SECRETS", "oauth-credentials.json")
    flow = InstalledAppFlow.from_client_secrets_file(secrets_file, GOOGLE_SCOPES)
    # force an offline refresh token
    creds = flow.run_local_server(
        port=0, prompt="consent", access_type="offline", include_granted_scopes="true"
    )
    with open(GOOGLE_TOKEN_PATH, "w", encoding="utf-8") as f:
        f.write(creds.to_json())
    print(f"Wrote {GOOGLE_TOKEN_PATH} with refresh_token={bool(creds.refresh_token)}.")


if __name__ == "__main__":
    main()
