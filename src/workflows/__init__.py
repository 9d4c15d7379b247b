"""
Workflows module - Generation coordination and reader session state.
"""
from workflows.generation import GenerationCoordinator, GenerationToken, LoadingAnimator
from workflows.session import ReaderSession

__all__ = [
    "GenerationCoordinator",
    "GenerationToken",
    "LoadingAnimator",
    "ReaderSession",
]
