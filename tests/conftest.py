import pytest

from teams_roster.config import AzureConfig, Config, GraphConfig, MonitoringConfig
from teams_roster.graph_client import GraphAPIError, TeamCreationError
from teams_roster.models import DirectoryUser, Team, TeamMembership


class FakeGraphClient:
    """In-memory stand-in for GraphClient that records write calls."""

    def __init__(self):
        self.users = {}
        self.teams = {}
        self.memberships = {}
        self.user_errors = {}
        self.add_errors = {}
        self.create_error = None
        self.find_errors = {}
        self.list_errors = {}
        self.lookups = []
        self.created = []
        self.added = []
        self.promoted = []
        self._next_id = 1

    def add_user(self, upn, enabled=True):
        user = DirectoryUser(
            id=f"id-{upn.split('@')[0]}", user_principal_name=upn, account_enabled=enabled
        )
        self.users[upn.casefold()] = user
        return user

    def add_team(self, name, team_id=None, members=()):
        team = Team(id=team_id or f"team-{name.lower()}", display_name=name)
        self.teams.setdefault(name.casefold(), []).append(team)
        self.memberships[team.id] = [
            TeamMembership(
                membership_id=f"m-{user.id}",
                user_id=user.id,
                roles=["owner"] if owner else [],
            )
            for user, owner in members
        ]
        return team

    def get_user(self, upn):
        self.lookups.append(upn)
        if upn.casefold() in self.user_errors:
            raise self.user_errors[upn.casefold()]
        return self.users.get(upn.casefold())

    def find_teams(self, display_name):
        if display_name.casefold() in self.find_errors:
            raise self.find_errors[display_name.casefold()]
        return list(self.teams.get(display_name.casefold(), []))

    def create_team(self, display_name, owner_id, description="", visibility="private"):
        if self.create_error:
            raise self.create_error
        team = Team(id=f"new-{self._next_id}", display_name=display_name)
        self._next_id += 1
        self.created.append((display_name, owner_id, description, visibility))
        self.teams.setdefault(display_name.casefold(), []).append(team)
        self.memberships[team.id] = [
            TeamMembership(membership_id="m-owner", user_id=owner_id, roles=["owner"])
        ]
        return team

    def list_members(self, team_id):
        if team_id in self.list_errors:
            raise self.list_errors[team_id]
        return list(self.memberships.get(team_id, []))

    def add_member(self, team_id, user_id, role):
        if user_id in self.add_errors:
            raise self.add_errors[user_id]
        self.added.append((team_id, user_id, role.value))

    def update_member_role(self, team_id, membership_id, role):
        self.promoted.append((team_id, membership_id, role.value))


@pytest.fixture
def config():
    return Config(
        azure=AzureConfig(tenant_id="tenant", client_id="client", client_secret="secret"),
        graph=GraphConfig(
            base_url="https://graph.test/v1.0",
            creation_poll_interval=0.5,
            creation_poll_attempts=3,
        ),
        monitoring=MonitoringConfig(log_level="DEBUG"),
    )


@pytest.fixture
def graph():
    return FakeGraphClient()


@pytest.fixture
def graph_error():
    def _make(status=500, code="InternalServerError", message="boom"):
        return GraphAPIError(status, code, message)
    return _make


@pytest.fixture
def creation_error():
    return TeamCreationError("Creating team failed: quota exceeded")
