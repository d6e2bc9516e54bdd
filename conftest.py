import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Provide sane defaults for settings so tests can import the app without a .env
os.environ.setdefault("GEMINI_API_KEY", "")
os.environ.setdefault("LIMITER_STORAGE_URI", "memory://")
