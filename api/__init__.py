"""
FastAPI RESTful API for the Classroom Books service.

This package provides:
- User registration, login and profile management with JWT bearer tokens
- A public book catalog with search, filters and pagination
- Owner/admin authorization for book updates and deletes
"""
