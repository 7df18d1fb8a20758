"""
Data models for roster rows, directory objects and provisioning results.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class MemberRole(str, Enum):
    """Role a user holds in a team."""

    OWNER = "owner"
    MEMBER = "member"


class TeamStatus(str, Enum):
    """What happened to a team during a run."""

    CREATED = "created"
    EXISTING = "existing"
    PLANNED = "planned"
    FAILED = "failed"


class UserOutcome(str, Enum):
    """What happened to a single roster user."""

    INITIAL_OWNER = "initial_owner"
    ADDED = "added"
    PROMOTED = "promoted"
    ALREADY_PRESENT = "already_present"
    WOULD_ADD = "would_add"
    WOULD_PROMOTE = "would_promote"
    USER_NOT_FOUND = "user_not_found"
    USER_DISABLED = "user_disabled"
    FAILED = "failed"


SKIPPED_OUTCOMES = (UserOutcome.USER_NOT_FOUND, UserOutcome.USER_DISABLED)


class RosterEntry(BaseModel):
    """A validated CSV row."""

    line_number: int
    team_name: str
    user_principal_name: str
    role: MemberRole


class RosterError(BaseModel):
    """A single validation problem found in the roster file."""

    line_number: int
    field: str
    value: str
    message: str

    def __str__(self) -> str:
        return f"line {self.line_number}: {self.field} {self.value!r}: {self.message}"


class TeamPlan(BaseModel):
    """Owners and members requested for one team, in file order."""

    team_name: str
    owners: List[str] = Field(default_factory=list)
    members: List[str] = Field(default_factory=list)


class DirectoryUser(BaseModel):
    """A user object returned by the directory."""

    id: str
    user_principal_name: str
    display_name: Optional[str] = None
    account_enabled: Optional[bool] = None


class Team(BaseModel):
    """A team (Microsoft 365 group with a team provisioned)."""

    id: str
    display_name: str


class TeamMembership(BaseModel):
    """A user's membership in a team."""

    membership_id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    roles: List[str] = Field(default_factory=list)

    @property
    def is_owner(self) -> bool:
        """Check if the membership carries the owner role."""
        return MemberRole.OWNER.value in (role.lower() for role in self.roles)


class UserResult(BaseModel):
    """Result for one user in one team."""

    user_principal_name: str
    role: MemberRole
    outcome: UserOutcome
    message: Optional[str] = None


class TeamResult(BaseModel):
    """Result of provisioning a single team."""

    team_name: str
    status: TeamStatus
    team_id: Optional[str] = None
    users: List[UserResult] = Field(default_factory=list)
    error_details: Optional[str] = None

    def count(self, *outcomes: UserOutcome) -> int:
        """Count users with any of the given outcomes."""
        return sum(1 for user in self.users if user.outcome in outcomes)

    @property
    def has_failures(self) -> bool:
        """Check if the team or any of its users failed."""
        return self.status == TeamStatus.FAILED or self.count(UserOutcome.FAILED) > 0


class RunSummary(BaseModel):
    """Result of a full roster run."""

    dry_run: bool = False
    teams: List[TeamResult] = Field(default_factory=list)

    def teams_with_status(self, status: TeamStatus) -> int:
        """Count teams with the given status."""
        return sum(1 for team in self.teams if team.status == status)

    def users_with_outcome(self, *outcomes: UserOutcome) -> int:
        """Count users across all teams with any of the given outcomes."""
        return sum(team.count(*outcomes) for team in self.teams)

    @property
    def total_added(self) -> int:
        """Count of users added, initial owners included."""
        return self.users_with_outcome(UserOutcome.INITIAL_OWNER, UserOutcome.ADDED)

    @property
    def total_promoted(self) -> int:
        """Count of members promoted to owner."""
        return self.users_with_outcome(UserOutcome.PROMOTED)

    @property
    def total_skipped(self) -> int:
        """Count of users skipped as missing or disabled."""
        return self.users_with_outcome(*SKIPPED_OUTCOMES)

    @property
    def total_failed(self) -> int:
        """Count of users that could not be added."""
        return self.users_with_outcome(UserOutcome.FAILED)

    @property
    def has_failures(self) -> bool:
        """Check if any team or user in the run failed."""
        return any(team.has_failures for team in self.teams)
