"""
Backend package for the blog API.

This package provides a FastAPI application that registers users, checks
HTTP Basic credentials and serves CRUD operations over blog posts stored in
MongoDB (or in memory for development and tests).
"""
