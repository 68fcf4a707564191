"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration and account linking.

Reads configuration from core.config.get_settings() at module load to decide
which providers are active. Only providers with both client ID and secret
configured get registered -- the sign-in template renders buttons from
get_enabled_providers().

Security notes:
  Email verification is mandatory. get_oauth_user_info() raises ValueError
  if the provider does not confirm the email is verified. Linking by email
  to an unverified address would hand an attacker the victim's account.

  The OAuth state parameter (CSRF protection) is handled by authlib via
  Starlette SessionMiddleware, which stores the state between the
  authorization redirect and the callback.

Supported providers:
  github -- Authorization code flow; static endpoints.
  google -- Authorization code flow; OIDC discovery.

Layer rule: no imports from api/, web/, actions/, or messages/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("gatehouse.auth.oauth")

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

if _cfg.github_client_id and _cfg.github_client_secret:
    oauth.register(
        name="github",
        client_id=_cfg.github_client_id,
        client_secret=_cfg.github_client_secret,
        access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
        authorize_url="https://github.com/login/oauth/authorize",
        api_base_url="https://api.github.com/",
        client_kwargs={"scope": "read:user user:email"},
    )
    logger.info("GitHub OAuth provider registered")

if _cfg.google_client_id and _cfg.google_client_secret:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")


@dataclass
class OAuthProfile:
    """Provider-neutral identity returned after a successful code exchange."""

    email: str
    subject: str
    name: str = ""
    image: str | None = None


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


def get_enabled_providers() -> list[dict]:
    """Return {"name", "label"} for every provider with credentials configured."""
    cfg = get_settings()
    providers: list[dict] = []
    if cfg.github_client_id and cfg.github_client_secret:
        providers.append({"name": "github", "label": "GitHub"})
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    return providers


def is_enabled(provider: str) -> bool:
    return provider in {p["name"] for p in get_enabled_providers()}


# ---------------------------------------------------------------------------
# Profile extraction -- provider-specific normalization
# ---------------------------------------------------------------------------


async def get_oauth_user_info(client, provider: str, token: dict) -> OAuthProfile:
    """Extract a verified OAuthProfile from a provider token response.

    Raises:
        ValueError: If a verified email cannot be confirmed, or the provider
            is unknown. The caller treats this as an authentication failure.
    """
    if provider == "github":
        return await _get_github_user_info(client, token)
    elif provider == "google":
        return _get_google_user_info(token)
    else:
        raise ValueError(f"Unknown OAuth provider: {provider!r}")


async def _get_github_user_info(client, token: dict) -> OAuthProfile:
    """Build a profile from GitHub's /user and /user/emails endpoints.

    GitHub does not put the email in the token. Only the entry with both
    primary=true and verified=true is accepted.
    """
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()

    email: str | None = None
    for entry in emails_resp.json():
        if entry.get("primary") and entry.get("verified"):
            email = entry["email"]
            break

    if not email:
        raise ValueError(
            "GitHub OAuth: no primary verified email found. "
            "The user must verify their email address on GitHub before signing in."
        )

    return OAuthProfile(
        email=email,
        subject=str(profile["id"]),
        name=profile.get("name") or profile.get("login") or "",
        image=profile.get("avatar_url"),
    )


def _get_google_user_info(token: dict) -> OAuthProfile:
    """Build a profile from the id_token claims authlib parsed into userinfo.

    Providers that omit email_verified are treated as unverified.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError("google OAuth: email is not verified.")

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ValueError("google OAuth: missing email or sub claim in userinfo")

    return OAuthProfile(
        email=email,
        subject=str(subject),
        name=userinfo.get("name") or "",
        image=userinfo.get("picture"),
    )


# ---------------------------------------------------------------------------
# Account resolution
# ---------------------------------------------------------------------------


def sign_in_with_oauth(store: UserStore, provider: str, profile: OAuthProfile) -> User:
    """Return the user for a verified OAuth profile, creating or linking as needed.

    Order:
      1. (provider, subject) already linked -> that user.
      2. A user with the same (verified) email exists -> link and return it.
      3. Otherwise create a USER with no password and link.
    """
    user = store.get_by_account(provider, profile.subject)
    if user is not None:
        return user

    user = store.get_by_email(profile.email)
    if user is None:
        try:
            user_id = store.create_user(
                User(
                    email=profile.email,
                    name=profile.name,
                    image=profile.image,
                    role=Role.USER.value,
                    email_verified=True,
                )
            )
        except IntegrityError:
            # Concurrent first sign-in with the same email; the other request won.
            user = store.get_by_email(profile.email)
            if user is None:
                raise
            user_id = user.id
        logger.info("Created user_id=%s from %s sign-in", user_id, provider)
    else:
        user_id = user.id
        updates: dict = {"email_verified": True}
        if not user.email_verified and user.hashed_password:
            # Whoever set this password never proved they own the address.
            updates["hashed_password"] = None
            store.delete_user_sessions(user_id)
            logger.info("Cleared unverified password for user_id=%s on %s link", user_id, provider)
        if not user.name and profile.name:
            updates["name"] = profile.name
        if not user.image and profile.image:
            updates["image"] = profile.image
        store.update_user(user_id, **updates)

    store.link_account(user_id, provider, profile.subject)
    logger.info("Linked %s identity to user_id=%s", provider, user_id)
    return store.get_by_id(user_id)
