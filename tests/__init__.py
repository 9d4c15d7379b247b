import sys
from pathlib import Path

# Allow running the suite from a checkout without installing the package
SRC_DIR = Path(__file__).resolve().parent.parent / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
