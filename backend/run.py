#!/usr/bin/env python3
# backend/run.py
"""
Local API server.

Binds to the in-memory test database unless DATABASE_URL is exported and
IS_TESTING is set to false.
"""
import os
from pathlib import Path
import sys

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("IS_TESTING", "true")

import uvicorn

if __name__ == "__main__":
    print("Starting TeachTape API on http://localhost:8000 (docs at /docs)")
    print(f"IS_TESTING={os.environ['IS_TESTING']}")
    uvicorn.run("teachtape.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
