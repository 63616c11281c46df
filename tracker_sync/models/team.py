"""Teams and the team directory used to resolve issue ownership"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Team:
    """A student team, identified by `<tutorial class>-<team>` (e.g. CS2103T-W12-3)"""

    id: str
    members: tuple = field(default_factory=tuple)

    @property
    def tutorial_class_id(self) -> str:
        return self.id.rpartition("-")[0]

    @property
    def team_id(self) -> str:
        return self.id.rpartition("-")[2]


class TeamDirectory:
    """In-memory lookup of teams by composite id"""

    def __init__(self, teams: Iterable[Team] = ()):
        self._teams: Dict[str, Team] = {t.id: t for t in teams}

    @classmethod
    def from_mapping(cls, data: Dict[str, List[str]]) -> "TeamDirectory":
        return cls(Team(id=str(team_id), members=tuple(members or [])) for team_id, members in data.items())

    @classmethod
    def from_file(cls, path: Optional[str]) -> "TeamDirectory":
        """Load `{"<composite id>": ["member", ...]}` from a JSON file."""
        if not path:
            return cls()
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Team file {path} must contain a JSON object")
        directory = cls.from_mapping(data)
        logger.info(f"Loaded {len(directory)} teams from {path}")
        return directory

    def __len__(self) -> int:
        return len(self._teams)

    def resolve_team(self, composite_id: Optional[str]) -> Optional[Team]:
        if not composite_id:
            return None
        return self._teams.get(composite_id)

    def teams(self, composite_ids: Iterable[str]) -> List[Team]:
        """Resolve several ids; unknown ids become member-less teams."""
        return [self._teams.get(tid) or Team(id=tid) for tid in composite_ids]
