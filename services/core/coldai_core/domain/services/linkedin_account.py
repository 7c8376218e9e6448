"""LinkedIn account linking through the hosted-auth collaborator.

Flow:
1. ``generate_auth_link`` returns a hosted auth URL valid for 30 minutes
2. The provider notifies ``record_connection`` once the account is linked
3. The dashboard reports completion with ``complete_connection``, either
   from the auth window's success message or, as a fallback, when the
   window closed; both re-check the stored status

A LinkedIn profile can only be linked to one dashboard user. A second user
linking the same profile gets the freshly created provider account deleted
and an actionable error.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from coldai_core.domain.models import UserProfile
from coldai_core.domain.timestamps import utcnow
from coldai_core.infrastructure.edge_functions import (
    EdgeFunctionClient,
    EdgeFunctionError,
    EdgeFunctionNotConfiguredError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class LinkedInAccountError(Exception):
    """Base exception for LinkedIn account operations."""
    pass


class AuthLinkError(LinkedInAccountError):
    """Raised when no hosted auth link could be generated."""
    pass


class LinkedInAlreadyLinkedError(LinkedInAccountError):
    """Raised when the LinkedIn profile is linked to another user."""
    pass


# =============================================================================
# CONSTANTS
# =============================================================================


AUTH_FUNCTION = "unipile-auth"
DELETE_FUNCTION = "unipile-delete-account"
AUTH_SUCCESS_MARKER = "UNIPILE_AUTH_SUCCESS"
AUTH_TYPES = ("create", "reconnect")

ALREADY_LINKED_MESSAGE = (
    "This LinkedIn account is already connected to another Cold AI account. "
    "Disconnect it there first, or connect a different LinkedIn account."
)


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class AuthLink:
    url: str
    token: Optional[str]
    expires_on: datetime


@dataclass
class LinkedAccount:
    """Account data delivered by the provider once linking succeeded."""

    account_id: str
    public_identifier: Optional[str] = None
    profile_url: Optional[str] = None
    profile_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConnectionSignal:
    """How the auth window reported back: a posted message or its closing."""

    kind: str  # "message" or "closed"
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success_message(self) -> bool:
        return self.kind == "message" and self.data.get("type") == AUTH_SUCCESS_MARKER


@dataclass
class LinkedInStatus:
    connected: bool
    account: Optional[dict[str, Any]] = None


def describe_account(profile: UserProfile) -> dict[str, Any]:
    """Display data for a connected profile."""
    data = profile.linkedin_profile_data or {}
    first_name = data.get("first_name") or ""
    last_name = data.get("last_name") or ""
    public_identifier = data.get("public_identifier") or profile.linkedin_public_identifier or ""
    organizations = data.get("organizations") or []

    identifier = public_identifier or profile.linkedin_url or ""
    if identifier and not identifier.startswith("http"):
        profile_url = f"https://www.linkedin.com/in/{identifier}"
    else:
        profile_url = identifier

    return {
        "id": profile.unipile_account_id,
        "provider": "LINKEDIN",
        "username": f"{first_name} {last_name}".strip() or "LinkedIn User",
        "status": "active",
        "metadata": {
            "profile_url": profile_url,
            "profile_picture_url": data.get("profile_picture_url") or "",
            "occupation": data.get("occupation") or "",
            "location": data.get("location") or "",
            "organization": organizations[0].get("name", "") if organizations else "",
            "first_name": first_name,
            "last_name": last_name,
            "public_identifier": public_identifier,
        },
    }


# =============================================================================
# SERVICE
# =============================================================================


class LinkedInAccountService:
    """Links, checks and unlinks a user's LinkedIn account."""

    def __init__(
        self,
        db: Session,
        edge_client: Optional[EdgeFunctionClient],
        web_base_url: str = "http://localhost:3000",
        notify_url: Optional[str] = None,
        expiry_minutes: int = 30,
    ):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session. The caller commits.
            edge_client: Client for the hosted-auth collaborator, or None when
                backend functions are not configured.
            web_base_url: Dashboard origin for success and failure redirects.
            notify_url: Where the provider posts the linked account.
            expiry_minutes: Lifetime of a hosted auth link.
        """
        self.db = db
        self.edge_client = edge_client
        self.web_base_url = web_base_url.rstrip("/")
        self.notify_url = notify_url
        self.expiry_minutes = expiry_minutes

    async def generate_auth_link(
        self,
        user_id: str,
        auth_type: str = "create",
        now: Optional[datetime] = None,
    ) -> AuthLink:
        if auth_type not in AUTH_TYPES:
            raise ValueError(f"Unknown auth type: {auth_type}")
        if self.edge_client is None:
            raise EdgeFunctionNotConfiguredError("Backend functions are not configured")
        expires_on = (now or utcnow()) + timedelta(minutes=self.expiry_minutes)

        try:
            result = await self.edge_client.invoke(
                AUTH_FUNCTION,
                {
                    "type": auth_type,
                    "providers": ["LINKEDIN"],
                    "expiresOn": expires_on.isoformat(),
                    "userId": user_id,
                    "success_url": f"{self.web_base_url}/auth/unipile/success",
                    "failure_url": f"{self.web_base_url}/auth/unipile/failure",
                    "webhook_url": self.notify_url,
                },
            )
        except EdgeFunctionError as e:
            raise AuthLinkError(f"Failed to generate auth link: {e}") from e

        data = result.get("data") or {}
        if not result.get("success") or not data.get("url"):
            raise AuthLinkError(result.get("error") or "Failed to generate auth link")

        returned_expiry = data.get("expiresOn")
        return AuthLink(
            url=data["url"],
            token=data.get("token"),
            expires_on=datetime.fromisoformat(returned_expiry) if returned_expiry else expires_on,
        )

    def check_status(self, user_id: str) -> LinkedInStatus:
        profile = self.db.get(UserProfile, user_id)
        if profile is None or not profile.linkedin_connected or not profile.unipile_account_id:
            return LinkedInStatus(connected=False)
        return LinkedInStatus(connected=True, account=describe_account(profile))

    def complete_connection(self, user_id: str, signal: ConnectionSignal) -> Optional[LinkedInStatus]:
        """Re-check status after the auth window reported back.

        Returns None for a posted message that is not the success marker.
        """
        if signal.kind not in ("message", "closed"):
            raise ValueError(f"Unknown connection signal: {signal.kind}")
        if signal.kind == "message" and not signal.is_success_message:
            return None
        return self.check_status(user_id)

    async def record_connection(self, user_id: str, account: LinkedAccount) -> LinkedInStatus:
        """Store a freshly linked account on the user's profile.

        Raises:
            LinkedInAlreadyLinkedError: The profile belongs to another user;
                the new provider account has been deleted.
        """
        public_identifier = account.public_identifier or account.profile_data.get(
            "public_identifier"
        )
        if public_identifier:
            owner = (
                self.db.query(UserProfile)
                .filter(
                    UserProfile.linkedin_public_identifier == public_identifier,
                    UserProfile.user_id != user_id,
                    UserProfile.linkedin_connected.is_(True),
                )
                .first()
            )
            if owner is not None:
                logger.warning(
                    f"LinkedIn {public_identifier} already linked; rolling back "
                    f"account {account.account_id} for user {user_id}"
                )
                await self._delete_remote(account.account_id, user_id)
                raise LinkedInAlreadyLinkedError(ALREADY_LINKED_MESSAGE)

        profile = self.db.get(UserProfile, user_id)
        if profile is None:
            profile = UserProfile(user_id=user_id)
            self.db.add(profile)
        profile.linkedin_connected = True
        profile.unipile_account_id = account.account_id
        profile.linkedin_public_identifier = public_identifier
        profile.linkedin_url = account.profile_url or ""
        profile.linkedin_profile_data = account.profile_data or None
        self.db.flush()

        logger.info(f"LinkedIn account {account.account_id} linked for user {user_id}")
        return LinkedInStatus(connected=True, account=describe_account(profile))

    async def disconnect(self, user_id: str) -> LinkedInStatus:
        """Unlink the account. Remote failures are logged; local state is always cleared."""
        profile = self.db.get(UserProfile, user_id)
        if profile is None:
            return LinkedInStatus(connected=False)

        if profile.unipile_account_id:
            await self._delete_remote(profile.unipile_account_id, user_id)

        profile.linkedin_connected = False
        profile.unipile_account_id = None
        profile.linkedin_url = None
        profile.linkedin_public_identifier = None
        profile.linkedin_profile_data = None
        self.db.flush()
        return LinkedInStatus(connected=False)

    async def _delete_remote(self, account_id: str, user_id: str) -> bool:
        if self.edge_client is None:
            logger.warning(
                f"Backend functions not configured; provider account {account_id} left in place"
            )
            return False
        try:
            result = await self.edge_client.invoke(
                DELETE_FUNCTION, {"account_id": account_id, "user_id": user_id}
            )
        except EdgeFunctionError as e:
            logger.warning(f"Failed to delete provider account {account_id}: {e}")
            return False
        if result.get("success") is False:
            logger.warning(f"Provider refused to delete account {account_id}: {result.get('error')}")
            return False
        return True


__all__ = [
    "AUTH_SUCCESS_MARKER",
    "AuthLink",
    "AuthLinkError",
    "ConnectionSignal",
    "LinkedAccount",
    "LinkedInAccountError",
    "LinkedInAccountService",
    "LinkedInAlreadyLinkedError",
    "LinkedInStatus",
    "describe_account",
]
