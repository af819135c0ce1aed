"""
Shared fixtures for stepeval tests
"""

import sys

import pytest


@pytest.fixture
def recursion_limit():
    """Setter for the interpreter recursion limit, restored after the test.

    Parse inputs before lowering the limit; the parser itself recurses.
    """
    original = sys.getrecursionlimit()
    yield sys.setrecursionlimit
    sys.setrecursionlimit(original)
