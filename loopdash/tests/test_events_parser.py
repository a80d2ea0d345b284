import json
import unittest

from loopdash.models import CompletionEvent, StartEvent
from loopdash.parsers.events import effective_identity, parse_event_line, parse_events


class EventParserTests(unittest.TestCase):
    def test_start_line_becomes_start_event(self) -> None:
        parsed = parse_event_line(
            json.dumps(
                {
                    "loop_id": "L1",
                    "session_id": "S1",
                    "status": "active",
                    "project": "/work/app",
                    "project_name": "app",
                    "task": "Fix tests",
                    "started_at": "2026-01-01T00:00:00Z",
                    "max_iterations": 10,
                }
            )
        )
        self.assertTrue(parsed.is_json)
        self.assertEqual(parsed.identity, "L1")
        self.assertIsInstance(parsed.event, StartEvent)
        self.assertEqual(parsed.event.max_iterations, 10)

    def test_completion_line_becomes_completion_event(self) -> None:
        parsed = parse_event_line('{"session_id":"S1","status":"completed","outcome":"success","iterations":3}')
        self.assertIsInstance(parsed.event, CompletionEvent)
        self.assertEqual(parsed.identity, "S1")
        self.assertEqual(parsed.event.iterations, 3)

    def test_non_json_line_is_malformed(self) -> None:
        parsed = parse_event_line("not json at all")
        self.assertFalse(parsed.is_json)
        self.assertTrue(parsed.is_malformed)
        self.assertIsNone(parsed.identity)

    def test_unknown_status_keeps_identity_but_no_event(self) -> None:
        parsed = parse_event_line('{"loop_id":"L9","session_id":"S9","status":"paused"}')
        self.assertTrue(parsed.is_json)
        self.assertEqual(parsed.identity, "L9")
        self.assertIsNone(parsed.event)

    def test_record_without_identity_is_not_grouped(self) -> None:
        parsed = parse_event_line('{"status":"active"}')
        self.assertTrue(parsed.is_json)
        self.assertIsNone(parsed.identity)
        self.assertIsNone(parsed.event)

    def test_json_array_is_not_an_event(self) -> None:
        parsed = parse_event_line("[1, 2]")
        self.assertTrue(parsed.is_json)
        self.assertTrue(parsed.is_malformed)

    def test_effective_identity_falls_back_to_session_id(self) -> None:
        self.assertEqual(effective_identity({"loop_id": "", "session_id": "S1"}), "S1")
        self.assertEqual(effective_identity({"loop_id": "L1", "session_id": "S1"}), "L1")
        self.assertIsNone(effective_identity({"loop_id": 5}))

    def test_parse_events_skips_bad_lines_in_order(self) -> None:
        events = parse_events(
            [
                '{"session_id":"a","status":"active"}',
                "garbage",
                '{"session_id":"a","status":"completed","outcome":"error"}',
            ]
        )
        self.assertEqual([type(e).__name__ for e in events], ["StartEvent", "CompletionEvent"])


if __name__ == "__main__":
    unittest.main()
