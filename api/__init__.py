"""
FastAPI RESTful API for the library service.

This module provides a REST API for:
- Creating, listing, filtering and updating books
- Creating, reading, updating and deleting users
- Health reporting and generated OpenAPI documentation
"""
