from __future__ import annotations

import os

# Tests build their own engines; keep the module-level engine off the dev database.
os.environ.setdefault("FABQUOTE_DATABASE_URL", "sqlite://")
os.environ.setdefault("FABQUOTE_CONVERSION_API_URL", "http://conversion.test")
os.environ.setdefault("FABQUOTE_ENVIRONMENT", "test")
