"""
Roster reading: parse the CSV, validate each row and group rows by team.
"""

import csv
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from .models import MemberRole, RosterEntry, RosterError, TeamPlan


logger = logging.getLogger(__name__)

TEAM_NAME_COLUMN = "TeamName"
USER_COLUMN = "UserPrincipalName"
ROLE_COLUMN = "Role"
REQUIRED_COLUMNS = (TEAM_NAME_COLUMN, USER_COLUMN, ROLE_COLUMN)

MAX_TEAM_NAME_LENGTH = 256

TEAM_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _.,&'()\-]*$")
UPN_PATTERN = re.compile(
    r"^[A-Za-z0-9._%+'\-]+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$"
)
ROLE_PATTERN = re.compile(r"^(owner|member)$", re.IGNORECASE)


class RosterValidationError(Exception):
    """Raised when the roster file cannot be used as-is."""

    def __init__(self, errors: List[RosterError]):
        self.errors = errors
        super().__init__(f"Roster has {len(errors)} invalid value(s)")


class RosterReader:
    """Reads and validates a team roster CSV."""

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def read(self, path: str) -> List[RosterEntry]:
        """Read ``path`` and return every row, raising if any row is invalid."""
        with open(path, newline="", encoding="utf-8-sig") as handle:
            return self.parse(handle)

    def parse(self, lines: Iterable[str]) -> List[RosterEntry]:
        reader = csv.reader(lines, delimiter=self.delimiter)
        header = next(reader, None)
        if header is None:
            raise RosterValidationError([
                RosterError(line_number=1, field="header", value="", message="file is empty")
            ])

        columns = self._map_columns(header)

        entries: List[RosterEntry] = []
        errors: List[RosterError] = []
        for row in reader:
            line_number = reader.line_num
            if not any(cell.strip() for cell in row):
                continue

            values = {
                name: (row[index].strip() if index < len(row) else "")
                for name, index in columns.items()
            }
            entry, row_errors = self.validate_row(line_number, values)
            if row_errors:
                errors.extend(row_errors)
            else:
                entries.append(entry)

        if errors:
            raise RosterValidationError(errors)

        logger.info(f"Roster validated: {len(entries)} row(s)")
        return entries

    def _map_columns(self, header: List[str]) -> Dict[str, int]:
        """Find the required columns, matching header names case-insensitively."""
        positions = {name.strip().lower(): index for index, name in enumerate(header)}

        columns: Dict[str, int] = {}
        missing = []
        for name in REQUIRED_COLUMNS:
            index = positions.get(name.lower())
            if index is None:
                missing.append(name)
            else:
                columns[name] = index

        if missing:
            raise RosterValidationError([
                RosterError(
                    line_number=1,
                    field="header",
                    value=name,
                    message="required column is missing",
                )
                for name in missing
            ])
        return columns

    def validate_row(
        self, line_number: int, values: Dict[str, str]
    ) -> Tuple[Optional[RosterEntry], List[RosterError]]:
        """Check the three roster fields of a single row."""
        errors = []

        team_name = values[TEAM_NAME_COLUMN]
        if not team_name:
            errors.append(self._error(line_number, TEAM_NAME_COLUMN, team_name, "is empty"))
        elif len(team_name) > MAX_TEAM_NAME_LENGTH:
            errors.append(self._error(
                line_number, TEAM_NAME_COLUMN, team_name,
                f"is longer than {MAX_TEAM_NAME_LENGTH} characters",
            ))
        elif not TEAM_NAME_PATTERN.match(team_name):
            errors.append(self._error(
                line_number, TEAM_NAME_COLUMN, team_name, "contains unsupported characters"
            ))

        upn = values[USER_COLUMN]
        if not upn:
            errors.append(self._error(line_number, USER_COLUMN, upn, "is empty"))
        elif not UPN_PATTERN.match(upn):
            errors.append(self._error(
                line_number, USER_COLUMN, upn, "is not a valid user principal name"
            ))

        role = values[ROLE_COLUMN]
        if not ROLE_PATTERN.match(role):
            errors.append(self._error(
                line_number, ROLE_COLUMN, role, "must be 'Owner' or 'Member'"
            ))

        if errors:
            return None, errors

        entry = RosterEntry(
            line_number=line_number,
            team_name=team_name,
            user_principal_name=upn,
            role=MemberRole(role.lower()),
        )
        return entry, []

    @staticmethod
    def _error(line_number: int, field: str, value: str, message: str) -> RosterError:
        return RosterError(line_number=line_number, field=field, value=value, message=message)


def group_by_team(entries: Iterable[RosterEntry]) -> List[TeamPlan]:
    """
    Group roster rows into one plan per team.

    Team names and user principal names compare case-insensitively; the first
    spelling seen wins. A user listed as both owner and member stays an owner.
    """
    plans: Dict[str, TeamPlan] = {}
    roles: Dict[str, Dict[str, MemberRole]] = {}

    for entry in entries:
        team_key = entry.team_name.casefold()
        plan = plans.get(team_key)
        if plan is None:
            plan = plans[team_key] = TeamPlan(team_name=entry.team_name)
            roles[team_key] = {}

        user_key = entry.user_principal_name.casefold()
        seen = roles[team_key].get(user_key)

        if seen is None:
            roles[team_key][user_key] = entry.role
            if entry.role == MemberRole.OWNER:
                plan.owners.append(entry.user_principal_name)
            else:
                plan.members.append(entry.user_principal_name)
        elif seen == entry.role:
            logger.warning(
                f"Line {entry.line_number}: {entry.user_principal_name} is listed twice "
                f"for team '{plan.team_name}', ignoring duplicate"
            )
        elif entry.role == MemberRole.OWNER:
            logger.warning(
                f"Line {entry.line_number}: {entry.user_principal_name} is listed as both "
                f"owner and member of '{plan.team_name}', keeping owner"
            )
            roles[team_key][user_key] = MemberRole.OWNER
            plan.members = [m for m in plan.members if m.casefold() != user_key]
            plan.owners.append(entry.user_principal_name)
        else:
            logger.warning(
                f"Line {entry.line_number}: {entry.user_principal_name} is listed as both "
                f"owner and member of '{plan.team_name}', keeping owner"
            )

    return list(plans.values())
