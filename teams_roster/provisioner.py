"""
Applies team plans: create missing teams, then add owners and members.
"""

import logging
from typing import Dict, List, Optional

from .config import Config
from .graph_client import GraphAPIError, GraphClient, TeamCreationError
from .models import (
    DirectoryUser, MemberRole, RunSummary, Team, TeamMembership,
    TeamPlan, TeamResult, TeamStatus, UserOutcome, UserResult
)


class TeamProvisioner:
    """Provisions teams from roster plans."""

    def __init__(self, client: GraphClient, config: Config, dry_run: bool = False):
        self.client = client
        self.config = config
        self.dry_run = dry_run
        self._users: Dict[str, Optional[DirectoryUser]] = {}
        self.logger = logging.getLogger(__name__)

    def run(self, plans: List[TeamPlan]) -> RunSummary:
        """Provision every team in order and collect the results."""
        summary = RunSummary(dry_run=self.dry_run)
        for plan in plans:
            summary.teams.append(self.provision_team(plan))
        return summary

    def _lookup_user(self, upn: str) -> Optional[DirectoryUser]:
        key = upn.casefold()
        if key not in self._users:
            self._users[key] = self.client.get_user(upn)
        return self._users[key]

    def _resolve_users(self, plan: TeamPlan, result: TeamResult) -> Dict[str, DirectoryUser]:
        """
        Verify every plan user against the directory.

        Users that are missing, disabled or could not be looked up are recorded
        on ``result``. Returns the users that can be added, keyed by casefolded UPN.
        """
        resolved: Dict[str, DirectoryUser] = {}
        requested = [(upn, MemberRole.OWNER) for upn in plan.owners]
        requested += [(upn, MemberRole.MEMBER) for upn in plan.members]

        for upn, role in requested:
            try:
                user = self._lookup_user(upn)
            except GraphAPIError as e:
                self.logger.error(f"Failed to look up {upn}: {e}")
                result.users.append(UserResult(
                    user_principal_name=upn, role=role,
                    outcome=UserOutcome.FAILED, message=str(e),
                ))
                continue

            if user is None:
                self.logger.warning(f"User {upn} was not found in the directory, skipping")
                result.users.append(UserResult(
                    user_principal_name=upn, role=role, outcome=UserOutcome.USER_NOT_FOUND
                ))
            elif user.account_enabled is False:
                self.logger.warning(f"User {upn} is disabled, skipping")
                result.users.append(UserResult(
                    user_principal_name=upn, role=role, outcome=UserOutcome.USER_DISABLED
                ))
            else:
                resolved[upn.casefold()] = user

        return resolved

    def provision_team(self, plan: TeamPlan) -> TeamResult:
        """Create the team if needed and bring its owners and members in line with the plan."""
        result = TeamResult(team_name=plan.team_name, status=TeamStatus.EXISTING)
        self.logger.info(
            f"Processing team '{plan.team_name}' "
            f"({len(plan.owners)} owner(s), {len(plan.members)} member(s))"
        )

        resolved = self._resolve_users(plan, result)

        try:
            matches = self.client.find_teams(plan.team_name)
        except GraphAPIError as e:
            return self._fail(result, f"Failed to look up team: {e}")

        if len(matches) > 1:
            return self._fail(
                result, f"Ambiguous team name: {len(matches)} teams are named '{plan.team_name}'"
            )

        owners = [upn for upn in plan.owners if upn.casefold() in resolved]
        members = [upn for upn in plan.members if upn.casefold() in resolved]

        memberships: Dict[str, TeamMembership] = {}
        if matches:
            team = matches[0]
            result.team_id = team.id
            try:
                for membership in self.client.list_members(team.id):
                    if membership.user_id:
                        memberships[membership.user_id] = membership
            except GraphAPIError as e:
                return self._fail(result, f"Failed to list members: {e}")
        else:
            if not owners:
                return self._fail(result, "No valid owner to create team")

            initial_owner = owners.pop(0)
            owner = resolved[initial_owner.casefold()]
            if self.dry_run:
                result.status = TeamStatus.PLANNED
                self.logger.info(f"[dry run] Would create team '{plan.team_name}' owned by {initial_owner}")
                result.users.append(UserResult(
                    user_principal_name=initial_owner, role=MemberRole.OWNER,
                    outcome=UserOutcome.WOULD_ADD,
                ))
            else:
                try:
                    team = self._create_team(plan.team_name, owner)
                except (GraphAPIError, TeamCreationError) as e:
                    return self._fail(result, f"Failed to create team: {e}")
                result.status = TeamStatus.CREATED
                result.team_id = team.id
                result.users.append(UserResult(
                    user_principal_name=initial_owner, role=MemberRole.OWNER,
                    outcome=UserOutcome.INITIAL_OWNER,
                ))
                memberships[owner.id] = TeamMembership(
                    membership_id="", user_id=owner.id, roles=[MemberRole.OWNER.value]
                )

        for upn in owners:
            result.users.append(
                self._apply_user(result.team_id, upn, resolved[upn.casefold()], MemberRole.OWNER, memberships)
            )
        for upn in members:
            result.users.append(
                self._apply_user(result.team_id, upn, resolved[upn.casefold()], MemberRole.MEMBER, memberships)
            )

        return result

    def _create_team(self, team_name: str, owner: DirectoryUser) -> Team:
        graph = self.config.graph
        self.logger.info(f"Creating team '{team_name}' owned by {owner.user_principal_name}")
        return self.client.create_team(
            team_name,
            owner.id,
            description=graph.team_description,
            visibility=graph.team_visibility,
        )

    def _apply_user(
        self,
        team_id: Optional[str],
        upn: str,
        user: DirectoryUser,
        role: MemberRole,
        memberships: Dict[str, TeamMembership],
    ) -> UserResult:
        """Add or promote one user, skipping users who already hold the role."""
        current = memberships.get(user.id)

        if current is not None and (role == MemberRole.MEMBER or current.is_owner):
            self.logger.info(f"{upn} is already in the team, skipping")
            return UserResult(user_principal_name=upn, role=role, outcome=UserOutcome.ALREADY_PRESENT)

        promote = current is not None
        if self.dry_run:
            outcome = UserOutcome.WOULD_PROMOTE if promote else UserOutcome.WOULD_ADD
            self.logger.info(f"[dry run] Would {'promote' if promote else 'add'} {upn} as {role.value}")
            return UserResult(user_principal_name=upn, role=role, outcome=outcome)

        try:
            if promote:
                self.client.update_member_role(team_id, current.membership_id, role)
                current.roles = [MemberRole.OWNER.value]
                self.logger.info(f"Promoted {upn} to owner")
                return UserResult(user_principal_name=upn, role=role, outcome=UserOutcome.PROMOTED)

            self.client.add_member(team_id, user.id, role)
            memberships[user.id] = TeamMembership(
                membership_id="",
                user_id=user.id,
                roles=[MemberRole.OWNER.value] if role == MemberRole.OWNER else [],
            )
            self.logger.info(f"Added {upn} as {role.value}")
            return UserResult(user_principal_name=upn, role=role, outcome=UserOutcome.ADDED)

        except GraphAPIError as e:
            self.logger.error(f"Failed to add {upn} as {role.value}: {e}")
            return UserResult(
                user_principal_name=upn, role=role, outcome=UserOutcome.FAILED, message=str(e)
            )

    def _fail(self, result: TeamResult, message: str) -> TeamResult:
        self.logger.error(f"Team '{result.team_name}': {message}")
        result.status = TeamStatus.FAILED
        result.error_details = message
        return result
