"""
Cognito Auth Provider - AWS Cognito user pool sessions.

Validates access tokens with ``GetUser`` and refreshes them with the
``REFRESH_TOKEN_AUTH`` flow. The principal id is the user's ``sub``.
"""

import asyncio
import base64
import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import boto3
import structlog
from botocore.exceptions import ClientError

from psyplex.services.principal import AuthSession

logger = structlog.get_logger(__name__)

# Cognito's default access token lifetime
DEFAULT_TOKEN_TTL = timedelta(hours=1)

_REJECTED_TOKEN_CODES = {"NotAuthorizedException", "UserNotFoundException"}


def token_expiry(access_token: str) -> Optional[datetime]:
    """Read the ``exp`` claim of a JWT without verifying it.

    Only called on tokens Cognito has already accepted via GetUser.
    """
    try:
        payload = access_token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload))
        return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
    except (IndexError, KeyError, TypeError, ValueError):
        return None


class CognitoAuthProvider:
    """AuthProvider backed by a Cognito user pool app client."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        region: Optional[str] = None,
        client: Any = None,
    ):
        """Initialize the provider.

        Args:
            access_token: Current access token, if the caller has one.
            refresh_token: Refresh token for REFRESH_TOKEN_AUTH.
            client_id: App client ID. Defaults to COGNITO_CLIENT_ID env var.
            region: AWS region. Defaults to AWS_REGION env var.
            client: Pre-built cognito-idp client (tests).
        """
        self.client_id = client_id or os.getenv("COGNITO_CLIENT_ID")
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._client = client or boto3.client("cognito-idp", region_name=self.region)
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._session: Optional[AuthSession] = None

    async def get_session(self) -> Optional[AuthSession]:
        if self._session is not None:
            return self._session
        if not self._access_token:
            return None

        expires_at = token_expiry(self._access_token)
        self._session = await asyncio.to_thread(self._describe, self._access_token, expires_at)
        return self._session

    async def refresh_session(self) -> Optional[AuthSession]:
        if not self._refresh_token or not self.client_id:
            return None

        result = await asyncio.to_thread(self._initiate_refresh)
        if result is None:
            return None

        self._access_token = result["AccessToken"]
        expires_at = datetime.now(timezone.utc) + timedelta(
            seconds=result.get("ExpiresIn", int(DEFAULT_TOKEN_TTL.total_seconds()))
        )
        self._session = await asyncio.to_thread(self._describe, self._access_token, expires_at)
        return self._session

    def _initiate_refresh(self) -> Optional[dict[str, Any]]:
        try:
            response = self._client.initiate_auth(
                AuthFlow="REFRESH_TOKEN_AUTH",
                ClientId=self.client_id,
                AuthParameters={"REFRESH_TOKEN": self._refresh_token},
            )
        except ClientError as e:
            code = e.response["Error"]["Code"]
            if code in _REJECTED_TOKEN_CODES:
                logger.warning("cognito_refresh_rejected", code=code)
                return None
            raise
        return response["AuthenticationResult"]

    def _describe(self, access_token: str, expires_at: Optional[datetime]) -> Optional[AuthSession]:
        try:
            response = self._client.get_user(AccessToken=access_token)
        except ClientError as e:
            code = e.response["Error"]["Code"]
            if code in _REJECTED_TOKEN_CODES:
                logger.warning("cognito_token_rejected", code=code)
                return None
            raise

        attributes = {a["Name"]: a["Value"] for a in response.get("UserAttributes", [])}
        return AuthSession(
            principal_id=attributes.get("sub", response["Username"]),
            access_token=access_token,
            refresh_token=self._refresh_token,
            expires_at=expires_at or datetime.now(timezone.utc) + DEFAULT_TOKEN_TTL,
            email=attributes.get("email"),
            full_name=attributes.get("name"),
        )
