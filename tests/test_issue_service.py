import unittest

from tracker_fakes import FakeTracker, make_service, remote_issue
from tracker_sync.models.issue import RemoteComment, Status
from tracker_sync.models.phase import Phase, Role
from tracker_sync.models.team import Team, TeamDirectory
from tracker_sync.services.issue_service import CurrentUser, IssueService
from tracker_sync.services.issue_store import IssueStore

TEAM = Team("CS2103T-W12-3", ("bob",))


def _service(phase, role, *, team=None, allocated=(), tracker=None):
    return IssueService(
        tracker or FakeTracker(),
        IssueStore(),
        TeamDirectory([TEAM]),
        phase=phase,
        user=CurrentUser(login_id="alice", role=role, team=team, allocated_teams=list(allocated)),
    )


class IssueFilterTests(unittest.TestCase):
    def test_student_in_bug_reporting_filters_by_creator(self):
        [f] = _service(Phase.BUG_REPORTING, Role.STUDENT).issue_filters()

        self.assertEqual(f.creator, "alice")
        self.assertEqual(f.state, "opened")

    def test_student_in_team_response_filters_by_team_labels(self):
        [f] = _service(Phase.TEAM_RESPONSE, Role.STUDENT, team=TEAM).issue_filters()

        self.assertEqual(f.labels, ["tutorial.CS2103T-W12", "team.3"])
        self.assertIsNone(f.creator)

    def test_tutor_gets_one_filter_per_allocated_team(self):
        other = Team("CS2103T-W12-4")
        filters = _service(Phase.MODERATION, Role.TUTOR, allocated=[TEAM, other]).issue_filters()

        self.assertEqual([f.labels[1] for f in filters], ["team.3", "team.4"])
        self.assertTrue(all(f.state == "all" for f in filters))

    def test_no_access_yields_no_filters(self):
        self.assertEqual(_service(Phase.MODERATION, Role.STUDENT).issue_filters(), [])
        self.assertEqual(_service(Phase.BUG_REPORTING, Role.TUTOR).issue_filters(), [])

    def test_admin_is_unfiltered_and_sees_closed_issues_late(self):
        [early] = _service(Phase.BUG_TRIMMING, Role.ADMIN).issue_filters()
        [late] = _service(Phase.TESTER_RESPONSE, Role.ADMIN).issue_filters()

        self.assertEqual((early.creator, early.labels, early.state), (None, [], "opened"))
        self.assertEqual(late.state, "all")


class IssueServiceFetchTests(unittest.IsolatedAsyncioTestCase):
    async def test_reload_without_access_does_not_call_remote(self):
        tracker = FakeTracker([remote_issue(1)])
        service = _service(Phase.MODERATION, Role.STUDENT, tracker=tracker)

        self.assertEqual(await service.reload_all_issues(), [])
        self.assertEqual(tracker.calls, [])

    async def test_reload_merges_results_of_all_filters(self):
        labels_3 = ["tutorial.CS2103T-W12", "team.3", "severity.Low", "type.FeatureFlaw"]
        labels_4 = ["tutorial.CS2103T-W12", "team.4", "severity.Low", "type.FeatureFlaw"]
        tracker = FakeTracker([remote_issue(1, labels=labels_3), remote_issue(2, labels=labels_4)])
        service = _service(
            Phase.TEAM_RESPONSE, Role.TUTOR, allocated=[TEAM, Team("CS2103T-W12-4")], tracker=tracker
        )

        issues = await service.reload_all_issues()

        self.assertEqual([i.id for i in issues], [1, 2])
        self.assertEqual(tracker.count("fetch_by_filter"), 2)

    async def test_parse_errors_are_logged(self):
        tracker = FakeTracker([remote_issue(1, labels=["severity.Low"])])
        service = make_service(tracker)

        with self.assertLogs("tracker_sync.services.issue_service", level="ERROR") as logs:
            issues = await service.reload_all_issues()

        self.assertEqual(issues[0].parse_error, "Issue 1: missing type label")
        self.assertIn("missing type label", logs.output[0])

    async def test_fetch_latest_issue_upserts(self):
        tracker = FakeTracker([remote_issue(1)])
        service = make_service(tracker)

        issue = await service.fetch_latest_issue(1)

        self.assertIs(service.store.get(1), issue)
        self.assertIsNone(await service.fetch_latest_issue(99))

    async def test_get_issue_prefers_cache(self):
        tracker = FakeTracker([remote_issue(1)])
        service = make_service(tracker)
        await service.get_issue(1)
        await service.get_issue(1)

        self.assertEqual(tracker.count("fetch_by_id"), 1)

    async def test_duplicates_and_team_response_lookup(self):
        service = make_service(FakeTracker([remote_issue(1), remote_issue(2)]))
        await service.reload_all_issues()
        service.store.get(2).duplicate_of = 1
        service.store.get(1).team_response = "Fixed"

        self.assertEqual([i.id for i in service.get_duplicate_issues_for(service.store.get(1))], [2])
        self.assertTrue(service.has_team_response(1))
        self.assertFalse(service.has_team_response(2))

    async def test_reset_clears_store_and_optionally_session(self):
        service = make_service(FakeTracker([remote_issue(1)]), session_id="s1")
        await service.reload_all_issues()

        service.reset()
        self.assertEqual(service.session_id, "s1")
        service.reset(reset_session_id=True)

        self.assertEqual(len(service.store), 0)
        self.assertIsNone(service.session_id)


class IssueServiceResponseTests(unittest.IsolatedAsyncioTestCase):
    BODY = (
        "# Issue Description\nIt crashes\n\n"
        "# Team's Response\nCannot reproduce\n\n"
        "## Duplicate status (if any):\n--"
    )

    async def test_tester_response_creates_comment_and_marks_done(self):
        tracker = FakeTracker([remote_issue(1, body=self.BODY)])
        service = make_service(tracker, phase=Phase.TESTER_RESPONSE)
        await service.reload_all_issues()

        updated = await service.update_tester_response(service.store.get(1), "I disagree")

        self.assertEqual(updated.status, Status.DONE)
        self.assertEqual(updated.tester_response, "I disagree")
        self.assertEqual(updated.tester_response_comment.body, "# Your Response\nI disagree")
        self.assertIn("status.Done", tracker.issues[1].labels)
        self.assertEqual(tracker.count("create_comment"), 1)

    async def test_tester_response_updates_existing_comment(self):
        comment = RemoteComment(id=50, issue_id=1, body="# Your Response\nOld")
        tracker = FakeTracker([remote_issue(1, body=self.BODY, comments=[comment])])
        service = make_service(tracker, phase=Phase.TESTER_RESPONSE)
        await service.reload_all_issues()

        updated = await service.update_tester_response(service.store.get(1), "New")

        self.assertEqual(tracker.count("create_comment"), 0)
        self.assertEqual(tracker.count("update_comment"), 1)
        self.assertEqual(updated.tester_response_comment.id, 50)
        self.assertEqual([c.id for c in updated.comments], [50])

    async def test_tutor_response_applies_moderation(self):
        body = (
            "# Issue Description\nIt crashes\n\n"
            "# Team's Response\nNot a bug\n\n"
            "# Disputes\n\n## :question: Issue type\n\nWrong type\n<hr>\n"
        )
        labels = ["tutorial.CS2103T-W12", "team.3", "severity.High", "type.FunctionalityBug"]
        tracker = FakeTracker([remote_issue(1, body=body, labels=labels)])
        service = make_service(
            tracker, phase=Phase.MODERATION, role=Role.ADMIN, teams=TeamDirectory([TEAM])
        )
        await service.reload_all_issues()
        issue = service.store.get(1)
        issue.disputes[0].resolved = True
        issue.disputes[0].tutor_response = "Agreed"

        from tracker_sync.services.markdown import render_tutor_moderation

        updated = await service.create_tutor_response(issue, render_tutor_moderation(issue.disputes))

        self.assertEqual(updated.tutor_comment.issue_id, 1)
        self.assertTrue(updated.disputes[0].resolved)
        self.assertEqual(updated.disputes[0].tutor_response, "Agreed")
        self.assertEqual(updated.unresolved_dispute_count(), 0)
        update_call = next(c for c in tracker.calls if c[0] == "update")
        self.assertEqual(update_call[5], [])


if __name__ == "__main__":
    unittest.main()
