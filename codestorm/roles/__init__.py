from .base import BaseRole, ProgressCallback
from .coder import CodeGenerator
from .corrector import CodeCorrector
from .design_architect import DesignArchitect
from .modifier import CodeModifier
from .observer import FileObserver
from .planner import Planner
from .splitter import CodeSplitter
from .synchronizer import FileSynchronizer

__all__ = [
    "BaseRole",
    "CodeCorrector",
    "CodeGenerator",
    "CodeModifier",
    "CodeSplitter",
    "DesignArchitect",
    "FileObserver",
    "FileSynchronizer",
    "Planner",
    "ProgressCallback",
]
