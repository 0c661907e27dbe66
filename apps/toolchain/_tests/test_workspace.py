"""Tests for isolated stage workspaces."""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import SimpleTestCase

from apps.toolchain.workspace import StageWorkspace


class StageWorkspaceTests(SimpleTestCase):
    def setUp(self):
        self._root = tempfile.TemporaryDirectory()
        self.root = Path(self._root.name)

    def tearDown(self):
        self._root.cleanup()

    def test_creates_and_removes_directory(self):
        with StageWorkspace("test", "abcdef123456", root=self.root) as ws:
            path = ws.path
            self.assertTrue(path.is_dir())
            self.assertTrue(path.name.startswith("abcdef12-test-"))
            self.assertEqual(ws.source_dir, path / "src")

        self.assertFalse(path.exists())

    def test_keep_leaves_directory(self):
        with StageWorkspace("build", "run-1", root=self.root, keep=True) as ws:
            path = ws.path

        self.assertTrue(path.exists())

    def test_removed_even_on_error(self):
        with self.assertRaises(RuntimeError):
            with StageWorkspace("deploy", "run-2", root=self.root) as ws:
                path = ws.path
                raise RuntimeError("boom")

        self.assertFalse(path.exists())

    @patch.dict(os.environ, {"PATH": "/usr/bin", "AWS_SECRET_ACCESS_KEY": "leak"}, clear=True)
    def test_environment_only_holds_allowed_vars_and_stage_secrets(self):
        with StageWorkspace("quality_scan", "run-3", {"SONAR_TOKEN": "tok"}, root=self.root) as ws:
            env = ws.env
            home = ws.path / "home"

        self.assertEqual(env["PATH"], "/usr/bin")
        self.assertEqual(env["SONAR_TOKEN"], "tok")
        self.assertEqual(env["HOME"], str(home))
        self.assertEqual(env["DOCKER_CONFIG"], str(home / ".docker"))
        self.assertEqual(env["CI"], "true")
        self.assertNotIn("AWS_SECRET_ACCESS_KEY", env)

    def test_runner_redacts_stage_secrets(self):
        ws = StageWorkspace("test", "run-4", {"DATABASE_URL": "postgres://secret"}, root=self.root)
        self.assertEqual(ws.runner.secrets, ["postgres://secret"])

    def test_environ_layers_extra_values(self):
        with StageWorkspace("provision", "run-5", root=self.root) as ws:
            env = ws.environ(TF_IN_AUTOMATION="1", SKIPPED=None)

        self.assertEqual(env["TF_IN_AUTOMATION"], "1")
        self.assertNotIn("SKIPPED", env)

    def test_source_dir_requires_open_workspace(self):
        with self.assertRaises(RuntimeError):
            StageWorkspace("test", "run-6", root=self.root).source_dir
