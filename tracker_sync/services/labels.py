"""Label codec: structured issue fields <-> flat `category.value` labels.

Also embeds hidden key/value metadata (session id, client version) into
free-text issue bodies as an HTML comment marker.
"""

import base64
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from tracker_sync.models.issue import DomainIssue, Status
from tracker_sync.models.phase import Phase
from tracker_sync.models.team import Team

TUTORIAL = "tutorial"
TEAM = "team"

ALL_PHASES = frozenset(Phase)
RESPONSE_PHASES = frozenset({Phase.TEAM_RESPONSE, Phase.TESTER_RESPONSE, Phase.MODERATION})
TEAM_PHASES = frozenset({Phase.TEAM_RESPONSE, Phase.MODERATION})


def make_label(category: str, value: Any) -> str:
    return f"{category}.{value}"


@dataclass(frozen=True)
class LabelRule:
    """One row of the label schema.

    kind:
      - "value": `category.value` holding a string attribute
      - "flag":  bare `category` label present when a bool attribute is true
      - "count": `category.N`, emitted only when the int attribute is > 0
    """

    category: str
    attr: str
    kind: str
    phases: FrozenSet[Phase]
    required: bool = False


LABEL_RULES: Tuple[LabelRule, ...] = (
    LabelRule("severity", "severity", "value", ALL_PHASES, required=True),
    LabelRule("type", "type", "value", ALL_PHASES, required=True),
    LabelRule("response", "response", "value", RESPONSE_PHASES),
    LabelRule("duplicate", "duplicated", "flag", RESPONSE_PHASES),
    LabelRule("status", "status", "value", frozenset({Phase.TEAM_RESPONSE, Phase.TESTER_RESPONSE})),
    LabelRule("pending", "pending", "count", frozenset({Phase.TESTER_RESPONSE})),
    LabelRule("unsure", "unsure", "flag", frozenset({Phase.TESTER_RESPONSE})),
)


def encode_labels(issue: DomainIssue, phase: Phase) -> List[str]:
    """Derive the label list for `issue` as seen in `phase` (deterministic order)."""
    labels: List[str] = []

    team = issue.team_assigned
    if team is None and issue.team_id:
        team = Team(issue.team_id)
    if phase in TEAM_PHASES and team is not None:
        labels.append(make_label(TUTORIAL, team.tutorial_class_id))
        labels.append(make_label(TEAM, team.team_id))

    for rule in LABEL_RULES:
        if phase not in rule.phases:
            continue
        value = getattr(issue, rule.attr, None)
        if rule.kind == "flag":
            if value:
                labels.append(rule.category)
        elif rule.kind == "count":
            if value and int(value) > 0:
                labels.append(make_label(rule.category, int(value)))
        elif value:
            labels.append(make_label(rule.category, getattr(value, "value", value)))

    return labels


def _split(label: str) -> Tuple[str, Optional[str]]:
    category, sep, value = label.partition(".")
    return category, (value if sep else None)


def decode_labels(labels: Iterable[str], phase: Phase) -> Tuple[Dict[str, Any], List[str]]:
    """Inverse of `encode_labels` for the rules relevant to `phase`.

    Returns `(fields, problems)`. Unknown labels are ignored; missing required
    labels and malformed values become problem strings.
    """
    values: Dict[str, str] = {}
    flags = set()
    for label in labels:
        category, value = _split(label)
        if value is None:
            flags.add(category)
        else:
            values.setdefault(category, value)

    fields: Dict[str, Any] = {}
    problems: List[str] = []
    for rule in LABEL_RULES:
        if phase not in rule.phases:
            continue
        if rule.kind == "flag":
            fields[rule.attr] = rule.category in flags
            continue

        raw = values.get(rule.category)
        if raw is None:
            if rule.required:
                problems.append(f"missing {rule.category} label")
            continue

        if rule.kind == "count":
            try:
                fields[rule.attr] = int(raw)
            except ValueError:
                problems.append(f"invalid {rule.category} label value '{raw}'")
        elif rule.attr == "status":
            try:
                fields[rule.attr] = Status(raw)
            except ValueError:
                problems.append(f"invalid {rule.category} label value '{raw}'")
        else:
            fields[rule.attr] = raw

    return fields, problems


def extract_team_id(labels: Iterable[str]) -> Optional[str]:
    """Composite `<tutorial>-<team>` id from the tutorial and team labels."""
    tutorial = team = None
    for label in labels:
        category, value = _split(label)
        if category == TUTORIAL and tutorial is None:
            tutorial = value
        elif category == TEAM and team is None:
            team = value
    if not tutorial or not team:
        return None
    return f"{tutorial}-{team}"


_HIDDEN_RE = re.compile(
    r"(?:\n\n)?<!--\s*tracker-sync:(?P<b64>[A-Za-z0-9+/=]*)\s*-->",
    re.IGNORECASE,
)


def _b64_json(data: Dict[str, str]) -> str:
    raw = json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _b64_json_load(value: str) -> Optional[Dict[str, str]]:
    try:
        obj = json.loads(base64.b64decode(value.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(obj, dict):
        return None
    return {str(k): str(v) for k, v in obj.items()}


def embed_hidden(text: Optional[str], data: Dict[str, str]) -> str:
    """Append a hidden metadata marker to `text`, replacing any existing one."""
    body, _ = extract_hidden(text)
    marker = f"<!-- tracker-sync:{_b64_json(dict(data))} -->"
    if not body:
        return marker
    return f"{body}\n\n{marker}"


def extract_hidden(text: Optional[str]) -> Tuple[str, Dict[str, str]]:
    """Split `text` into its human-readable part and the hidden metadata."""
    if not text:
        return "", {}
    m = _HIDDEN_RE.search(text)
    if not m:
        return text, {}
    data = _b64_json_load(m.group("b64")) or {}
    return text[: m.start()] + text[m.end():], data
