"""Voice capture: speech-to-text providers and their result types."""
