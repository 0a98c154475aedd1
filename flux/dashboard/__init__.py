"""Web transport - thin FastAPI layer over the capture and breakdown pipelines

Components:
    backend/main.py: FastAPI application, lifespan and error handlers
    backend/routes/: tasks, audio (upload + SSE progress) and profile routes
"""
