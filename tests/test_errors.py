import unittest


class ValidationErrorTests(unittest.TestCase):
    def test_from_message_parses_field_payload(self):
        from tracker_sync.errors import ValidationError

        err = ValidationError.from_message('Validation Failed: {"field": "assignees", "code": "invalid", "value": "eve"}')

        self.assertEqual((err.field, err.code, err.value), ("assignees", "invalid", "eve"))
        self.assertEqual(err.status_code, 422)

    def test_from_message_without_payload_keeps_raw_text(self):
        from tracker_sync.errors import ValidationError

        err = ValidationError.from_message("title is too long", status_code=400)

        self.assertIsNone(err.field)
        self.assertEqual(err.message, "title is too long")
        self.assertEqual(err.status_code, 400)

    def test_malformed_payload_is_tolerated(self):
        from tracker_sync.errors import ValidationError

        err = ValidationError.from_message("Validation Failed: {not json")

        self.assertIsNone(err.field)


class UserMessageTests(unittest.TestCase):
    def test_invalid_assignee_message(self):
        from tracker_sync.errors import ValidationError, user_message

        err = ValidationError("x", field="assignees", code="invalid", value="eve")

        self.assertEqual(
            user_message(err),
            "Assignee eve has not joined your organization yet. Please remove them from the assignees list.",
        )

    def test_other_errors_use_their_message(self):
        from tracker_sync.errors import RemoteUnavailable, ValidationError, user_message

        self.assertEqual(user_message(RemoteUnavailable("timeout")), "timeout")
        self.assertEqual(user_message(ValidationError("bad", field="title", code="too_long")), "bad")
        self.assertEqual(user_message(RuntimeError("boom")), "boom")


class ErrorChannelTests(unittest.TestCase):
    def test_report_notifies_and_keeps_recent_messages(self):
        from tracker_sync.errors import ErrorChannel, RemoteUnavailable

        channel = ErrorChannel(max_messages=2)
        seen = []
        unsubscribe = channel.subscribe(seen.append)

        with self.assertLogs("tracker_sync.errors", level="ERROR"):
            channel.report(RemoteUnavailable("a"))
            channel.report(RemoteUnavailable("b"))
            unsubscribe()
            channel.report(RemoteUnavailable("c"))

        self.assertEqual(seen, ["a", "b"])
        self.assertEqual(channel.messages, ["b", "c"])
        channel.clear()
        self.assertEqual(channel.messages, [])

    def test_raising_subscriber_is_logged_and_others_still_notified(self):
        from tracker_sync.errors import ErrorChannel, RemoteUnavailable

        channel = ErrorChannel()
        seen = []

        def broken(_message):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(seen.append)

        with self.assertLogs("tracker_sync.observable", level="ERROR"):
            message = channel.report(RemoteUnavailable("offline"))

        self.assertEqual(message, "offline")
        self.assertEqual(seen, ["offline"])
        self.assertEqual(channel.messages, ["offline"])


if __name__ == "__main__":
    unittest.main()
