import sys
from pathlib import Path

# Ensure src is importable when running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))
