"""
Package lifecycle for criage.

Provides the PackageManager orchestrator plus hook execution and package
scaffolding.
"""

from .hooks import execute_hooks, run_build_script
from .manager import PackageManager
from .scaffold import create_package, default_manifest

__all__ = [
    "PackageManager",
    "execute_hooks",
    "run_build_script",
    "create_package",
    "default_manifest",
]
