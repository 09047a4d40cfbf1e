"""Cathedral Build Engine - Data Models"""
from .blueprint import Blueprint, BlueprintSegment, BlueprintError, load_blueprint

__all__ = [
    "Blueprint", "BlueprintSegment", "BlueprintError", "load_blueprint",
]
