"""Markdown layouts of issue bodies and response comments.

Later phases keep structured content in the issue body and in specially
headed comments:

    # Issue Description / # Team's Response / # Disputes   (issue body)
    # Team's Response ... ## Duplicate status (if any):     (team comment)
    # Your Response                                         (tester comment)
    # Tutor Moderation                                      (tutor comment)
"""

import re
from typing import Dict, List, Optional

from tracker_sync.models.issue import Dispute, DomainIssue, RemoteComment
from tracker_sync.models.phase import Phase
from tracker_sync.services.labels import embed_hidden

ISSUE_DESCRIPTION = "Issue Description"
TEAMS_RESPONSE = "Team's Response"
DISPUTES = "Disputes"
YOUR_RESPONSE = "Your Response"
TUTOR_MODERATION = "Tutor Moderation"
DUPLICATE_STATUS = "## Duplicate status (if any):"
NO_DUPLICATE = "--"

_SECTION_RE = re.compile(r"^# (?P<title>[^\n]+?)[ \t]*$", re.MULTILINE)
_DISPUTE_RE = re.compile(r"^## :question: (?P<title>[^\n]+?)[ \t]*$", re.MULTILINE)
_DONE_RE = re.compile(r"^### Done: (?P<done>true|false)[ \t]*$", re.MULTILINE | re.IGNORECASE)
_DUPLICATE_RE = re.compile(r"Duplicate of #(?P<id>\d+)", re.IGNORECASE)
_HR = "<hr>"


def parse_sections(text: Optional[str]) -> Dict[str, str]:
    """Map level-1 heading -> stripped content below it."""
    text = text or ""
    matches = list(_SECTION_RE.finditer(text))
    sections: Dict[str, str] = {}
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections.setdefault(m.group("title"), text[m.end():end].strip())
    return sections


def find_comment(comments: List[RemoteComment], heading: str) -> Optional[RemoteComment]:
    """First comment whose body opens with `# <heading>`."""
    for comment in comments:
        if (comment.body or "").lstrip().startswith(f"# {heading}"):
            return comment
    return None


def parse_team_response(text: str) -> tuple:
    """Split a team response section into (response text, duplicate-of id)."""
    response, _, duplicate_part = text.partition(DUPLICATE_STATUS)
    m = _DUPLICATE_RE.search(duplicate_part)
    return response.strip(), (int(m.group("id")) if m else None)


def _blocks(text: str, pattern: re.Pattern) -> List[tuple]:
    matches = list(pattern.finditer(text or ""))
    out = []
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        content = text[m.end():end]
        content = content.split(_HR, 1)[0]
        out.append((m.group("title"), content.strip()))
    return out


def parse_disputes(text: str) -> List[Dispute]:
    return [Dispute(title=title, description=content) for title, content in _blocks(text, _DISPUTE_RE)]


def apply_tutor_moderation(disputes: List[Dispute], comment: RemoteComment) -> List[str]:
    """Copy resolved flags and tutor responses from the moderation comment.

    Returns the titles of disputes the comment has no entry for.
    """
    entries = {}
    for title, content in _blocks(comment.body or "", _DISPUTE_RE):
        m = _DONE_RE.search(content)
        resolved = bool(m and m.group("done").lower() == "true")
        response = content[m.end():].strip() if m else content
        entries[title] = (resolved, response)

    missing = []
    for dispute in disputes:
        entry = entries.get(dispute.title)
        if entry is None:
            missing.append(dispute.title)
            continue
        dispute.resolved, dispute.tutor_response = entry
        dispute.comment_id = comment.id
    return missing


def render_duplicate_status(issue: DomainIssue) -> str:
    target = f"Duplicate of #{issue.duplicate_of}" if issue.duplicated and issue.duplicate_of else NO_DUPLICATE
    return f"{DUPLICATE_STATUS}\n{target}"


def render_team_response(issue: DomainIssue) -> str:
    return f"# {TEAMS_RESPONSE}\n{issue.team_response or ''}\n\n{render_duplicate_status(issue)}"


def render_tester_response(issue: DomainIssue) -> str:
    return f"# {YOUR_RESPONSE}\n{issue.tester_response or ''}"


def render_dispute(dispute: Dispute) -> str:
    return f"## :question: {dispute.title}\n\n{dispute.description}\n{_HR}\n"


def render_tutor_moderation(disputes: List[Dispute]) -> str:
    parts = [f"# {TUTOR_MODERATION}\n"]
    for d in disputes:
        done = "true" if d.resolved else "false"
        parts.append(f"## :question: {d.title}\n\n### Done: {done}\n\n{d.tutor_response}\n{_HR}\n")
    return "\n".join(parts)


def render_issue_body(issue: DomainIssue, phase: Phase) -> str:
    """Remote body text for `issue` as written in `phase`."""
    if phase == Phase.MODERATION:
        disputes = "\n".join(render_dispute(d) for d in issue.disputes)
        body = (
            f"# {ISSUE_DESCRIPTION}\n{issue.description}\n\n"
            f"# {TEAMS_RESPONSE}\n{issue.team_response or ''}\n\n"
            f"# {DISPUTES}\n\n{disputes}"
        )
    elif phase == Phase.TESTER_RESPONSE:
        body = (
            f"# {ISSUE_DESCRIPTION}\n{issue.description}\n\n"
            f"# {TEAMS_RESPONSE}\n{issue.team_response or ''}\n\n"
            f"{render_duplicate_status(issue)}"
        )
    else:
        body = issue.description or ""

    if issue.hidden_data:
        return embed_hidden(body, issue.hidden_data)
    return body
