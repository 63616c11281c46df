import unittest

from tracker_sync.models.issue import Dispute, DomainIssue, RemoteComment, RemoteIssue, Status
from tracker_sync.models.phase import Phase
from tracker_sync.models.team import Team, TeamDirectory

TEAMS = TeamDirectory([Team("CS2103T-W12-3", ("bob", "carol"))])


def _issue(issue_id=7, **kwargs):
    kwargs.setdefault("labels", ["severity.High", "type.FunctionalityBug"])
    kwargs.setdefault("body", "It crashes")
    return RemoteIssue(id=issue_id, title="Crash", **kwargs)


class BuildIssueTests(unittest.TestCase):
    def test_id_is_kept_in_every_phase(self):
        from tracker_sync.services.issue_factory import build_issue

        for phase in Phase:
            with self.subTest(phase=phase):
                issue = build_issue(_issue(42, labels=[]), phase, TEAMS.resolve_team)
                self.assertEqual(issue.id, 42)
                self.assertEqual(issue.phase, phase)

    def test_unknown_phase_raises(self):
        from tracker_sync.services.issue_factory import build_issue

        with self.assertRaises(ValueError):
            build_issue(_issue(), "archived", TEAMS.resolve_team)

    def test_bug_reporting_reads_labels_and_strips_hidden_data(self):
        from tracker_sync.services.issue_factory import build_issue
        from tracker_sync.services.labels import embed_hidden

        remote = _issue(body=embed_hidden("It crashes", {"session": "s1"}))
        issue = build_issue(remote, Phase.BUG_REPORTING, TEAMS.resolve_team)

        self.assertIsNone(issue.parse_error)
        self.assertEqual(issue.description, "It crashes")
        self.assertEqual(issue.hidden_data, {"session": "s1"})
        self.assertEqual(issue.severity, "High")
        self.assertEqual(issue.type, "FunctionalityBug")

    def test_missing_labels_produce_parse_error_not_exception(self):
        from tracker_sync.services.issue_factory import build_issue

        issue = build_issue(_issue(labels=["severity.High"]), Phase.BUG_REPORTING, TEAMS.resolve_team)

        self.assertEqual(issue.parse_error, "Issue 7: missing type label")
        self.assertEqual(issue.severity, "High")

    def test_team_response_resolves_team_and_reads_comment(self):
        from tracker_sync.services.issue_factory import build_issue

        comment = RemoteComment(
            id=5,
            issue_id=7,
            body="# Team's Response\nWorks as intended\n\n## Duplicate status (if any):\nDuplicate of #3",
        )
        remote = _issue(
            labels=["tutorial.CS2103T-W12", "team.3", "severity.High", "type.FunctionalityBug", "status.Done"],
            comments=[comment],
        )

        issue = build_issue(remote, Phase.TEAM_RESPONSE, TEAMS.resolve_team)

        self.assertIsNone(issue.parse_error)
        self.assertEqual(issue.team_assigned.id, "CS2103T-W12-3")
        self.assertEqual(issue.status, Status.DONE)
        self.assertEqual(issue.team_response, "Works as intended")
        self.assertEqual(issue.duplicate_of, 3)

    def test_unknown_team_is_a_parse_error(self):
        from tracker_sync.services.issue_factory import build_issue

        remote = _issue(labels=["tutorial.T99", "team.1", "severity.High", "type.FunctionalityBug"])
        issue = build_issue(remote, Phase.TEAM_RESPONSE, TEAMS.resolve_team)

        self.assertIsNone(issue.team_assigned)
        self.assertIn("unknown team 'T99-1'", issue.parse_error)
        self.assertEqual(issue.team_id, "T99-1")

    def test_missing_team_labels_are_a_parse_error(self):
        from tracker_sync.services.issue_factory import build_issue

        issue = build_issue(_issue(), Phase.MODERATION, TEAMS.resolve_team)

        self.assertIn("missing tutorial/team labels", issue.parse_error)

    def test_tester_response_body_sections(self):
        from tracker_sync.services.issue_factory import build_issue

        body = (
            "# Issue Description\nIt crashes\n\n"
            "# Team's Response\nCannot reproduce\n\n"
            "## Duplicate status (if any):\n--"
        )
        comment = RemoteComment(id=9, issue_id=7, body="# Your Response\nI disagree")
        remote = _issue(body=body, comments=[comment])

        issue = build_issue(remote, Phase.TESTER_RESPONSE, TEAMS.resolve_team)

        self.assertIsNone(issue.parse_error)
        self.assertEqual(issue.description, "It crashes")
        self.assertEqual(issue.team_response, "Cannot reproduce")
        self.assertIsNone(issue.duplicate_of)
        self.assertEqual(issue.tester_response, "I disagree")
        self.assertEqual(issue.tester_response_comment.id, 9)

    def test_tester_response_without_sections_keeps_best_effort_issue(self):
        from tracker_sync.services.issue_factory import build_issue

        issue = build_issue(_issue(body="free text"), Phase.TESTER_RESPONSE, TEAMS.resolve_team)

        self.assertEqual(issue.description, "free text")
        self.assertIn("missing the description or team response section", issue.parse_error)

    def test_moderation_disputes_and_tutor_comment(self):
        from tracker_sync.services.issue_factory import build_issue

        body = (
            "# Issue Description\nIt crashes\n\n"
            "# Team's Response\nNot a bug\n\n"
            "# Disputes\n\n"
            "## :question: Issue severity\n\nToo low\n<hr>\n\n"
            "## :question: Issue type\n\nWrong type\n<hr>\n"
        )
        tutor = RemoteComment(
            id=11,
            issue_id=7,
            body=(
                "# Tutor Moderation\n\n"
                "## :question: Issue severity\n\n### Done: true\n\nAgreed\n<hr>\n\n"
                "## :question: Issue type\n\n### Done: false\n\n\n<hr>\n"
            ),
        )
        remote = _issue(
            labels=["tutorial.CS2103T-W12", "team.3", "severity.High", "type.FunctionalityBug"],
            body=body,
            comments=[tutor],
        )

        issue = build_issue(remote, Phase.MODERATION, TEAMS.resolve_team)

        self.assertIsNone(issue.parse_error)
        self.assertEqual([d.title for d in issue.disputes], ["Issue severity", "Issue type"])
        self.assertTrue(issue.disputes[0].resolved)
        self.assertEqual(issue.disputes[0].tutor_response, "Agreed")
        self.assertEqual(issue.disputes[0].comment_id, 11)
        self.assertFalse(issue.disputes[1].resolved)
        self.assertEqual(issue.unresolved_dispute_count(), 1)

    def test_rendered_moderation_body_parses_back(self):
        from tracker_sync.services.issue_factory import build_issue
        from tracker_sync.services.labels import encode_labels
        from tracker_sync.services.markdown import render_issue_body

        issue = DomainIssue(
            id=3,
            phase=Phase.MODERATION,
            title="Crash",
            description="It crashes",
            severity="Low",
            type="FeatureFlaw",
            team_assigned=TEAMS.resolve_team("CS2103T-W12-3"),
            team_response="Not a bug",
            disputes=[Dispute("Issue severity", "Too low")],
        )
        remote = RemoteIssue(
            id=3,
            title=issue.title,
            body=render_issue_body(issue, Phase.MODERATION),
            labels=encode_labels(issue, Phase.MODERATION),
        )

        rebuilt = build_issue(remote, Phase.MODERATION, TEAMS.resolve_team)

        self.assertIsNone(rebuilt.parse_error)
        self.assertEqual(rebuilt.description, "It crashes")
        self.assertEqual(rebuilt.team_response, "Not a bug")
        self.assertEqual([(d.title, d.description) for d in rebuilt.disputes], [("Issue severity", "Too low")])
        self.assertEqual(rebuilt.team_assigned, issue.team_assigned)


if __name__ == "__main__":
    unittest.main()
