"""Root conftest.py for pytest.

This file ensures the project root is in sys.path before any test imports.
"""
import os
import sys

# Add project root to path at startup - MUST happen at import time
project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)
