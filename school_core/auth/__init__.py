"""
Authentication service for the Smart School core.

This package provides authentication and authorization:
- Student, teacher and admin registration and login
- bcrypt password hashing
- JWT access and refresh tokens
- Role-based access control
"""
