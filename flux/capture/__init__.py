"""Voice capture: transcript extraction and the audio-to-inbox pipeline."""
