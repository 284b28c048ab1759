"""Pytest configuration for all tests."""

import os
import sys

# Make the src.deployhook package importable without installation
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)
