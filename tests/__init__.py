"""FLUX Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - profile/: context provider and profile storage
  - voice/: Deepgram transcription adapter
  - llm/: OpenRouter client and JSON helpers
  - capture/: extraction normalization and the capture pipeline
  - tasks/: task storage, parent completion, breakdown pipeline
- integration/: API endpoints and end-to-end capture flows

Running tests:
    pytest
    pytest tests/unit/tasks/
"""
