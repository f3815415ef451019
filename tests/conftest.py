"""
Global test configuration.

Points the app at an in-memory SQLite database and a non-development
environment before any lms_api module is imported.
"""

import os

os.environ["PYTHON_ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")
