#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

For production, run uvicorn (or a process manager) against shopdesk.main:app.
"""
import os
import sys
from pathlib import Path

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

from shopdesk.core.config import settings

if __name__ == "__main__":
    print("Starting ShopDesk development server at http://localhost:8000 (docs at /docs)")
    uvicorn.run(
        "shopdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
