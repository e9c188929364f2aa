from __future__ import annotations

import os
import tempfile

# Point settings at an on-disk SQLite database before any thoughtlog module builds the engine.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="thoughtlog-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db")
os.environ.setdefault("AI_PROVIDER", "fake")
os.environ.setdefault("AUTH_DEV_BYPASS", "true")
os.environ.setdefault("FIREBASE_PROJECT_ID", "thoughtlog-test")
os.environ.setdefault("CURSOR_SECRET", "test-cursor-secret")
os.environ.setdefault("ANALYSIS_EXECUTION_MODE", "queue")
