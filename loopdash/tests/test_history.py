import json
import tempfile
import unittest
from pathlib import Path

from loopdash.config import Settings
from loopdash.services.history import ActiveSessionError, SessionHistory


def _line(**fields) -> str:
    return json.dumps(fields)


class SessionHistoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.settings = Settings.for_base_dir(Path(self._tmp.name))
        self.settings.log_file.parent.mkdir(parents=True)
        self.settings.loops_dir.mkdir(parents=True)
        self.settings.transcripts_dir.mkdir(parents=True)
        self.live_marker = self.settings.loops_dir / "live.md"
        self.live_marker.write_text("---\nsession_id: S-live\niteration: 1\n---\n", encoding="utf-8")
        self.stale_marker = self.settings.loops_dir / "stale.md"
        self.stale_marker.write_text("x", encoding="utf-8")

        lines = [
            _line(loop_id="done", session_id="S1", status="active", started_at="2026-01-01T00:00:00Z"),
            "garbage line",
            _line(loop_id="done", session_id="S1", status="completed", outcome="success"),
            _line(
                loop_id="live",
                session_id="S2",
                status="active",
                state_file_path=str(self.live_marker),
                started_at="2026-01-01T00:00:00Z",
            ),
            _line(loop_id="orphan", session_id="S3", status="completed", outcome="error"),
            _line(
                loop_id="stale",
                session_id="S4",
                status="active",
                state_file_path=str(self.stale_marker),
                started_at="2026-01-01T00:00:00Z",
            ),
            _line(loop_id="stale", session_id="S4", status="completed", outcome="cancelled"),
        ]
        self.settings.log_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        (self.settings.transcripts_dir / "done_full.txt").write_text("t", encoding="utf-8")
        self.history = SessionHistory.from_settings(self.settings)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _loop_ids(self) -> list:
        ids = []
        for line in self.settings.log_file.read_text(encoding="utf-8").splitlines():
            try:
                ids.append(json.loads(line)["loop_id"])
            except ValueError:
                ids.append(None)
        return ids

    def test_delete_session_removes_all_its_lines(self) -> None:
        self.assertTrue(self.history.delete_session("done"))
        self.assertEqual(self._loop_ids(), [None, "live", "orphan", "stale", "stale"])
        self.assertFalse((self.settings.transcripts_dir / "done_full.txt").exists())

    def test_delete_unknown_session_returns_false(self) -> None:
        before = self.settings.log_file.read_bytes()
        self.assertFalse(self.history.delete_session("missing"))
        self.assertEqual(self.settings.log_file.read_bytes(), before)

    def test_delete_active_session_is_refused(self) -> None:
        with self.assertRaises(ActiveSessionError):
            self.history.delete_session("live")
        self.assertIn("live", self._loop_ids())

    def test_delete_all_archived_keeps_active_and_garbage(self) -> None:
        deleted = self.history.delete_all_archived()
        self.assertEqual(deleted, 3)
        self.assertEqual(self._loop_ids(), [None, "live"])
        self.assertTrue(self.live_marker.exists())
        self.assertFalse(self.stale_marker.exists())

    def test_delete_all_archived_on_missing_log(self) -> None:
        self.settings.log_file.unlink()
        self.assertEqual(self.history.delete_all_archived(), 0)


if __name__ == "__main__":
    unittest.main()
