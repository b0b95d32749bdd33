"""
Route modules for the Classroom Books API.
"""

from api.routes import auth, books

__all__ = ["auth", "books"]
