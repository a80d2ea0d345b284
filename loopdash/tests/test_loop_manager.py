import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from loopdash.config import Settings
from loopdash.models import LoopSession
from loopdash.services.liveness import LivenessOracle, PathContainmentError, resolve_contained_path
from loopdash.services.loop_manager import cancel_loop


def _session(marker, status="active", project="") -> LoopSession:
    return LoopSession(
        loop_id="L1",
        session_id="S1",
        status=status,
        project=project,
        state_file_path=str(marker) if marker is not None else None,
    )


class CancelLoopTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.settings = Settings.for_base_dir(self.root / "base")
        self.settings.loops_dir.mkdir(parents=True)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_deletes_marker_of_active_loop(self) -> None:
        marker = self.settings.loops_dir / "ralph-loop.L1.local.md"
        marker.write_text("---\nsession_id: S1\niteration: 1\n---\n", encoding="utf-8")

        result = cancel_loop(_session(marker), self.settings)

        self.assertTrue(result.success)
        self.assertEqual(result.message, "Successfully cancelled loop L1")
        self.assertFalse(marker.exists())

    def test_marker_under_project_claude_dir_is_allowed(self) -> None:
        project = self.root / "project"
        marker = project / ".claude" / "ralph-loop.local.md"
        marker.parent.mkdir(parents=True)
        marker.write_text("x", encoding="utf-8")

        result = cancel_loop(_session(marker, project=str(project)), self.settings)

        self.assertTrue(result.success)
        self.assertFalse(marker.exists())

    def test_refuses_non_active_loop(self) -> None:
        marker = self.settings.loops_dir / "L1.md"
        marker.write_text("x", encoding="utf-8")
        result = cancel_loop(_session(marker, status="success"), self.settings)
        self.assertFalse(result.success)
        self.assertIn("is not active", result.message)
        self.assertTrue(marker.exists())

    def test_refuses_missing_state_path(self) -> None:
        result = cancel_loop(_session(None), self.settings)
        self.assertFalse(result.success)
        self.assertIn("No state file path", result.message)

    def test_refuses_path_outside_allowed_roots(self) -> None:
        outside = self.root / "elsewhere.md"
        outside.write_text("keep me", encoding="utf-8")
        result = cancel_loop(_session(outside), self.settings)
        self.assertFalse(result.success)
        self.assertTrue(outside.exists())

    def test_refuses_traversal_out_of_loops_dir(self) -> None:
        victim = self.root / "victim.md"
        victim.write_text("keep me", encoding="utf-8")
        sneaky = self.settings.loops_dir / ".." / ".." / "victim.md"
        result = cancel_loop(_session(sneaky), self.settings)
        self.assertFalse(result.success)
        self.assertTrue(victim.exists())

    def test_already_missing_marker_counts_as_cancelled(self) -> None:
        result = cancel_loop(_session(self.settings.loops_dir / "gone.md"), self.settings)
        self.assertTrue(result.success)
        self.assertIn("nothing to delete", result.message)


class ContainmentTests(unittest.TestCase):
    def test_relative_path_is_rejected(self) -> None:
        with self.assertRaises(PathContainmentError):
            resolve_contained_path("loops/x.md", [Path("/tmp")])

    def test_root_itself_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(PathContainmentError):
                resolve_contained_path(tmpdir, [Path(tmpdir)])


class LivenessOracleTests(unittest.TestCase):
    def test_home_relative_marker_is_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            marker = Path(tmpdir) / "loops" / "L1.md"
            marker.parent.mkdir()
            marker.write_text("---\nsession_id: S1\niteration: 3\n---\n", encoding="utf-8")

            with patch.dict(os.environ, {"HOME": tmpdir}):
                oracle = LivenessOracle()
                self.assertTrue(oracle.is_alive("~/loops/L1.md"))
                self.assertEqual(oracle.current_iteration("~/loops/L1.md"), 3)
                self.assertEqual(
                    resolve_contained_path("~/loops/L1.md", [Path(tmpdir) / "loops"]),
                    marker.resolve(),
                )


if __name__ == "__main__":
    unittest.main()
