"""
VRMKit Package

Procedural humanoid avatar generation with VRM 1.0 export.
Builds a skeleton and skinned body parts, segments the head into expression
regions, and writes a glTF binary carrying the VRMC_vrm extension.
"""

from .main import build_vrm, main

__all__ = ["build_vrm", "main"]
