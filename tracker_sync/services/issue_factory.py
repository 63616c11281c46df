"""Phase-aware construction of domain issues from remote issues"""

import logging
from typing import Callable, Dict, List, Optional

from tracker_sync.models.issue import DomainIssue, RemoteIssue
from tracker_sync.models.phase import Phase
from tracker_sync.models.team import Team
from tracker_sync.services import markdown
from tracker_sync.services.labels import decode_labels, extract_hidden, extract_team_id

logger = logging.getLogger(__name__)

TeamResolver = Callable[[str], Optional[Team]]


def _base_issue(remote: RemoteIssue, phase: Phase, problems: List[str]) -> DomainIssue:
    description, hidden = extract_hidden(remote.body)
    fields, label_problems = decode_labels(remote.labels, phase)
    problems.extend(label_problems)
    return DomainIssue(
        id=remote.id,
        phase=phase,
        title=remote.title,
        description=description,
        comments=list(remote.comments),
        assignees=list(remote.assignees),
        hidden_data=hidden,
        state=remote.state,
        **fields,
    )


def _resolve_team(issue: DomainIssue, remote: RemoteIssue, resolver: TeamResolver, problems: List[str]) -> None:
    issue.team_id = extract_team_id(remote.labels)
    if issue.team_id is None:
        problems.append("missing tutorial/team labels")
        return
    issue.team_assigned = resolver(issue.team_id)
    if issue.team_assigned is None:
        problems.append(f"unknown team '{issue.team_id}'")


def _build_bug_reporting(remote, phase, resolver, problems) -> DomainIssue:
    return _base_issue(remote, phase, problems)


def _build_team_response(remote, phase, resolver, problems) -> DomainIssue:
    issue = _base_issue(remote, phase, problems)
    _resolve_team(issue, remote, resolver, problems)
    comment = markdown.find_comment(issue.comments, markdown.TEAMS_RESPONSE)
    if comment is not None:
        section = markdown.parse_sections(comment.body).get(markdown.TEAMS_RESPONSE, "")
        issue.team_response, issue.duplicate_of = markdown.parse_team_response(section)
    return issue


def _build_tester_response(remote, phase, resolver, problems) -> DomainIssue:
    issue = _base_issue(remote, phase, problems)
    sections = markdown.parse_sections(issue.description)
    if markdown.ISSUE_DESCRIPTION not in sections or markdown.TEAMS_RESPONSE not in sections:
        problems.append("issue body is missing the description or team response section")
    else:
        issue.description = sections[markdown.ISSUE_DESCRIPTION]
        issue.team_response, issue.duplicate_of = markdown.parse_team_response(
            sections[markdown.TEAMS_RESPONSE]
        )
    comment = markdown.find_comment(issue.comments, markdown.YOUR_RESPONSE)
    if comment is not None:
        issue.tester_response_comment = comment
        issue.tester_response = markdown.parse_sections(comment.body).get(markdown.YOUR_RESPONSE, "")
    return issue


def _build_moderation(remote, phase, resolver, problems) -> DomainIssue:
    issue = _base_issue(remote, phase, problems)
    _resolve_team(issue, remote, resolver, problems)
    sections = markdown.parse_sections(issue.description)
    missing = [
        s for s in (markdown.ISSUE_DESCRIPTION, markdown.TEAMS_RESPONSE, markdown.DISPUTES) if s not in sections
    ]
    if missing:
        problems.append(f"issue body is missing sections: {', '.join(missing)}")
        return issue

    issue.description = sections[markdown.ISSUE_DESCRIPTION]
    issue.team_response = sections[markdown.TEAMS_RESPONSE]
    issue.disputes = markdown.parse_disputes(sections[markdown.DISPUTES])

    comment = markdown.find_comment(issue.comments, markdown.TUTOR_MODERATION)
    if comment is not None:
        issue.tutor_comment = comment
        unmatched = markdown.apply_tutor_moderation(issue.disputes, comment)
        if unmatched:
            problems.append(f"tutor moderation has no entry for: {', '.join(unmatched)}")
    return issue


_BUILDERS: Dict[Phase, Callable] = {
    Phase.BUG_REPORTING: _build_bug_reporting,
    Phase.BUG_TRIMMING: _build_bug_reporting,
    Phase.TEAM_RESPONSE: _build_team_response,
    Phase.TESTER_RESPONSE: _build_tester_response,
    Phase.MODERATION: _build_moderation,
}


def build_issue(remote: RemoteIssue, phase: Phase, team_resolver: TeamResolver) -> DomainIssue:
    """Build the `phase`-shaped domain issue for `remote`.

    Bad or missing label/body data never fails construction: the problems are
    joined into `parse_error` and the best-effort issue is returned. An
    unknown phase raises ValueError.
    """
    try:
        builder = _BUILDERS[Phase(phase)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown phase: {phase!r}")

    problems: List[str] = []
    issue = builder(remote, Phase(phase), team_resolver, problems)
    if problems:
        issue.parse_error = f"Issue {remote.id}: " + "; ".join(problems)
    return issue
