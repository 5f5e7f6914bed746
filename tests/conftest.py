import sys
from pathlib import Path


# Ensure the repo root (and the shared test helpers) are importable when tests
# are run without installing the package.
ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT, Path(__file__).resolve().parent):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
