"""User profile, projects, known people and the capture context built from them."""
