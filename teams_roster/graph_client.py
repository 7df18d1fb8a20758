"""
Microsoft Graph client for directory lookups and team management.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ClientSecretCredential

from .config import Config
from .models import DirectoryUser, MemberRole, Team, TeamMembership


GRAPH_SCOPE = "https://graph.microsoft.com/.default"
MEMBER_ODATA_TYPE = "#microsoft.graph.aadUserConversationMember"

_TEAM_ID_PATTERN = re.compile(r"teams\('([^']+)'\)")


class GraphAPIError(Exception):
    """A Microsoft Graph request returned an error status."""

    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"Graph API error {status_code} ({code}): {message}")

    @classmethod
    def from_response(cls, response: requests.Response) -> "GraphAPIError":
        """Build an error from Graph's {"error": {"code", "message"}} envelope."""
        code, message = "unknown", response.text
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        if isinstance(error, dict):
            code = error.get("code") or code
            message = error.get("message") or message
        return cls(response.status_code, code, message)


class TeamCreationError(Exception):
    """The asynchronous team creation operation did not succeed."""


class GraphClient:
    """Graph client for directory and team operations."""

    def __init__(
        self,
        config: Config,
        credential: Optional[Any] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the Graph client with credentials."""
        self.credential = credential or ClientSecretCredential(
            tenant_id=config.azure.tenant_id,
            client_id=config.azure.client_id,
            client_secret=config.azure.client_secret,
        )
        self.session = session or requests.Session()
        self.base_url = config.graph.base_url
        self.timeout = config.graph.timeout
        self.poll_interval = config.graph.creation_poll_interval
        self.poll_attempts = config.graph.creation_poll_attempts
        self._sleep = sleep

        self.logger = logging.getLogger(__name__)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Build request headers with a fresh bearer token."""
        token = self.credential.get_token(GRAPH_SCOPE)
        headers = {
            "Authorization": f"Bearer {token.token}",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _url(self, path: str) -> str:
        """Resolve a relative Graph path against the base URL."""
        if path.startswith("http"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """Send one Graph request; transport, auth and HTTP failures raise GraphAPIError."""
        url = self._url(path)
        self.logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(headers),
                timeout=self.timeout,
            )
        except (requests.RequestException, ClientAuthenticationError) as e:
            raise GraphAPIError(0, type(e).__name__, str(e)) from e

        if response.status_code >= 400:
            raise GraphAPIError.from_response(response)
        return response

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _user_bind(self, user_id: str) -> str:
        """OData bind URL for a directory user."""
        return f"{self.base_url}/users('{user_id}')"

    def get_user(self, user_principal_name: str) -> Optional[DirectoryUser]:
        """Look up a user by UPN, returning None when the directory has no such user."""
        try:
            response = self._request(
                "GET",
                f"users/{quote(user_principal_name, safe='@')}",
                params={"$select": "id,userPrincipalName,displayName,accountEnabled"},
            )
        except GraphAPIError as e:
            if e.status_code == 404:
                return None
            raise

        data = response.json()
        return DirectoryUser(
            id=data["id"],
            user_principal_name=data.get("userPrincipalName", user_principal_name),
            display_name=data.get("displayName"),
            account_enabled=data.get("accountEnabled"),
        )

    def find_teams(self, display_name: str) -> List[Team]:
        """Find teams whose display name matches exactly."""
        escaped = display_name.replace("'", "''")
        params = {
            "$filter": (
                f"displayName eq '{escaped}' and "
                "resourceProvisioningOptions/Any(x:x eq 'Team')"
            ),
            "$select": "id,displayName",
            "$count": "true",
        }
        response = self._request(
            "GET", "groups", params=params, headers={"ConsistencyLevel": "eventual"}
        )
        return [
            Team(id=group["id"], display_name=group.get("displayName", display_name))
            for group in response.json().get("value", [])
        ]

    def create_team(
        self,
        display_name: str,
        owner_id: str,
        description: str = "",
        visibility: str = "private",
    ) -> Team:
        """Create a team with ``owner_id`` as its initial owner and wait for it to be ready."""
        body = {
            "template@odata.bind": f"{self.base_url}/teamsTemplates('standard')",
            "displayName": display_name,
            "description": description or display_name,
            "visibility": visibility,
            "members": [
                {
                    "@odata.type": MEMBER_ODATA_TYPE,
                    "roles": [MemberRole.OWNER.value],
                    "user@odata.bind": self._user_bind(owner_id),
                }
            ],
        }
        response = self._request("POST", "teams", json=body)

        operation_url = response.headers.get("Location")
        team_id = self._team_id_from_headers(response.headers)
        if not operation_url:
            if team_id:
                return Team(id=team_id, display_name=display_name)
            raise TeamCreationError(f"Graph did not return an operation for team '{display_name}'")

        operation = self._wait_for_operation(operation_url, display_name)
        team_id = operation.get("targetResourceId") or team_id
        if not team_id:
            raise TeamCreationError(f"Graph did not return an id for team '{display_name}'")

        self.logger.info(f"Created team '{display_name}' ({team_id})")
        return Team(id=team_id, display_name=display_name)

    @staticmethod
    def _team_id_from_headers(headers: Any) -> Optional[str]:
        """Pull the new team id out of the Content-Location or Location header."""
        for name in ("Content-Location", "Location"):
            match = _TEAM_ID_PATTERN.search(headers.get(name) or "")
            if match:
                return match.group(1)
        return None

    def _wait_for_operation(self, operation_url: str, display_name: str) -> Dict[str, Any]:
        """Poll a teamsAsyncOperation until it finishes."""
        for attempt in range(1, self.poll_attempts + 1):
            operation = self._request("GET", operation_url).json()
            status = (operation.get("status") or "").lower()

            if status == "succeeded":
                return operation
            if status == "failed":
                error = operation.get("error") or {}
                raise TeamCreationError(
                    f"Creating team '{display_name}' failed: "
                    f"{error.get('message') or error.get('code') or 'unknown error'}"
                )

            self.logger.debug(
                f"Team '{display_name}' creation is {status or 'pending'} "
                f"(check {attempt}/{self.poll_attempts})"
            )
            self._sleep(self.poll_interval)

        raise TeamCreationError(
            f"Team '{display_name}' was not ready after {self.poll_attempts} checks"
        )

    def list_members(self, team_id: str) -> List[TeamMembership]:
        """List every membership of a team, following paging links."""
        memberships: List[TeamMembership] = []
        url: Optional[str] = f"teams/{team_id}/members"
        while url:
            payload = self._request("GET", url).json()
            for entry in payload.get("value", []):
                memberships.append(
                    TeamMembership(
                        membership_id=entry["id"],
                        user_id=entry.get("userId"),
                        email=entry.get("email"),
                        roles=entry.get("roles") or [],
                    )
                )
            url = payload.get("@odata.nextLink")
        return memberships

    def add_member(self, team_id: str, user_id: str, role: MemberRole) -> None:
        """Add a user to a team as owner or member."""
        body = {
            "@odata.type": MEMBER_ODATA_TYPE,
            "roles": [MemberRole.OWNER.value] if role == MemberRole.OWNER else [],
            "user@odata.bind": self._user_bind(user_id),
        }
        self._request("POST", f"teams/{team_id}/members", json=body)

    def update_member_role(self, team_id: str, membership_id: str, role: MemberRole) -> None:
        """Change the role of an existing membership."""
        body = {
            "@odata.type": MEMBER_ODATA_TYPE,
            "roles": [MemberRole.OWNER.value] if role == MemberRole.OWNER else [],
        }
        self._request("PATCH", f"teams/{team_id}/members/{membership_id}", json=body)
