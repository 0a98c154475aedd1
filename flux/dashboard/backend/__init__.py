"""Dashboard Backend Package

FastAPI REST API and Server-Sent Events stream for the FLUX client.
"""
