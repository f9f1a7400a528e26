"""Interactive Instagram login that caches a session for the bridge.

Run once (``igbridge login``) so that the long-running bridge can start
from the cached session without a password in the environment.
"""

import os
from getpass import getpass

from instagrapi import Client
from instagrapi.exceptions import ChallengeRequired, TwoFactorRequired

from core.config import InstagramConfig


def _resolve_password(config: InstagramConfig) -> str:
    if config.password:
        return config.password
    return getpass("Instagram password: ")


def _resolve_2fa_code() -> str:
    code = os.getenv("INSTAGRAM_2FA_CODE")
    if code:
        return code
    return input("2FA code: ").strip()


def _resolve_username(config: InstagramConfig) -> str:
    if config.username:
        return config.username
    return input("Instagram username: ").strip()


def authorize(client: Client, config: InstagramConfig) -> None:
    username = _resolve_username(config)
    password = _resolve_password(config)
    if config.session_path.exists():
        client.load_settings(config.session_path)
    try:
        client.login(username, password)
    except TwoFactorRequired:
        client.login(username, password, verification_code=_resolve_2fa_code())
    except ChallengeRequired:
        print("Instagram requires a challenge. Approve the login in the app and retry.")
        raise SystemExit(1)

    config.session_path.parent.mkdir(parents=True, exist_ok=True)
    client.dump_settings(config.session_path)


def main(config: InstagramConfig) -> None:
    client = Client()
    authorize(client, config)
    print(f"Logged in as: {client.username}")
    print(f"Session saved to {config.session_path}")
