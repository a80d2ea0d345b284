import tempfile
import unittest
from pathlib import Path

from loopdash.services.transcripts import delete_transcripts, is_valid_loop_id


class TranscriptCleanupTests(unittest.TestCase):
    def test_removes_every_artifact_for_listed_loops(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            for name in ("L1_iterations.jsonl", "L1_full.txt", "L1_full.jsonl", "L1_checklist.json", "L2_full.txt"):
                (root / name).write_text("x", encoding="utf-8")

            report = delete_transcripts(root, ["L1"])

            self.assertTrue(report.ok)
            self.assertEqual(len(report.deleted), 4)
            self.assertEqual([p.name for p in root.iterdir()], ["L2_full.txt"])

    def test_unsafe_ids_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "transcripts"
            root.mkdir()
            outside = Path(tmpdir) / "secret_full.txt"
            outside.write_text("x", encoding="utf-8")

            report = delete_transcripts(root, ["../secret", "", "a" * 65])

            self.assertEqual(len(report.skipped), 3)
            self.assertTrue(outside.exists())

    def test_loop_id_pattern(self) -> None:
        self.assertTrue(is_valid_loop_id("abc-123_X"))
        self.assertFalse(is_valid_loop_id("a/b"))
        self.assertFalse(is_valid_loop_id(None))


if __name__ == "__main__":
    unittest.main()
