# TOURDISPATCH_CONTRACT_COMPILEALL_V1
from __future__ import annotations

import subprocess
import sys
import unittest
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parent.parent

SOURCE_DIRS = ("tourdispatch", "tests")


class TestCompileAllContract(unittest.TestCase):
    def test_compileall_sources(self):
        for name in SOURCE_DIRS:
            src = REPO_ROOT / name
            with self.subTest(dir=name):
                self.assertTrue(src.is_dir(), f"Missing source dir: {src}")
                cmd = [sys.executable, "-m", "compileall", "-q", str(src)]
                p = subprocess.run(cmd, cwd=str(REPO_ROOT), capture_output=True, text=True)
                combined = (p.stdout or "") + "\n" + (p.stderr or "")
                self.assertEqual(p.returncode, 0, f"compileall failed:\ncmd: {cmd}\nstdout/stderr:\n{combined}")

    def test_util_stays_a_namespace_package(self):
        # tourdispatch.util is found through setuptools namespace discovery.
        self.assertFalse((REPO_ROOT / "tourdispatch" / "util" / "__init__.py").exists())
        self.assertTrue((REPO_ROOT / "tourdispatch" / "util" / "timeparse.py").is_file())


if __name__ == "__main__":
    unittest.main(verbosity=2)
