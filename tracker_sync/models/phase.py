"""Workflow phases, user roles and the issue filter matrix"""
import enum


class Phase(str, enum.Enum):
    """Sequential workflow stages"""
    BUG_REPORTING = "bugReporting"
    BUG_TRIMMING = "bugTrimming"
    TEAM_RESPONSE = "teamResponse"
    TESTER_RESPONSE = "testerResponse"
    MODERATION = "moderation"


class Role(str, enum.Enum):
    """Role of the signed-in user"""
    STUDENT = "Student"
    TUTOR = "Tutor"
    ADMIN = "Admin"


class FilterKind(str, enum.Enum):
    """Which remote issues a user may load in a phase"""
    BY_CREATOR = "by_creator"
    BY_TEAM = "by_team"
    BY_TEAM_ASSIGNED = "by_team_assigned"
    NO_FILTER = "no_filter"
    NO_ACCESS = "no_access"


ISSUES_FILTER = {
    Phase.BUG_REPORTING: {
        Role.STUDENT: FilterKind.BY_CREATOR,
        Role.TUTOR: FilterKind.NO_ACCESS,
        Role.ADMIN: FilterKind.NO_FILTER,
    },
    Phase.BUG_TRIMMING: {
        Role.STUDENT: FilterKind.BY_CREATOR,
        Role.TUTOR: FilterKind.NO_ACCESS,
        Role.ADMIN: FilterKind.NO_FILTER,
    },
    Phase.TEAM_RESPONSE: {
        Role.STUDENT: FilterKind.BY_TEAM,
        Role.TUTOR: FilterKind.BY_TEAM_ASSIGNED,
        Role.ADMIN: FilterKind.NO_FILTER,
    },
    Phase.TESTER_RESPONSE: {
        Role.STUDENT: FilterKind.BY_CREATOR,
        Role.TUTOR: FilterKind.NO_ACCESS,
        Role.ADMIN: FilterKind.NO_FILTER,
    },
    Phase.MODERATION: {
        Role.STUDENT: FilterKind.NO_ACCESS,
        Role.TUTOR: FilterKind.BY_TEAM_ASSIGNED,
        Role.ADMIN: FilterKind.NO_FILTER,
    },
}


def filter_kind_for(phase: Phase, role: Role) -> FilterKind:
    return ISSUES_FILTER.get(phase, {}).get(role, FilterKind.NO_ACCESS)


def requires_closed_issues(phase: Phase) -> bool:
    """Later phases keep working on issues that were closed by the tester."""
    return phase in (Phase.TESTER_RESPONSE, Phase.MODERATION)
