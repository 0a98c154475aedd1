"""FLUX - voice-first task capture for ADHD brains

Philosophy:
    A thought that isn't captured in the next ten seconds is gone.
    FLUX takes a mumbled voice note, turns it into a sorted task, and later
    hands the user only a small bundle of tasks that fits their energy.

Components:
    profile/: Per-user personalization (keywords, projects, people) and context
    voice/: Speech-to-text adapters
    llm/: Chat-completion client shared by extraction and decomposition
    capture/: Audio -> transcript -> structured task pipeline
    tasks/: Task storage, decomposition into shards, breakdown pipeline
    progress.py: Per-request progress events for streaming clients
    dashboard/: FastAPI transport

Usage:
    uvicorn flux.dashboard.backend.main:app --port 3000
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"
HARDPROMPTS_DIR = PROJECT_ROOT / "hardprompts"

__version__ = "0.1.0"

__all__ = [
    "ARGS_DIR",
    "HARDPROMPTS_DIR",
    "PROJECT_ROOT",
    "__version__",
]
