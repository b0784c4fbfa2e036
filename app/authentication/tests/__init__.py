"""
Tests for authentication app.

- test_managers.py: UserManager creation rules
- test_views.py: JWT token endpoints
- factories.py: UserFactory shared by the listings and payments tests
"""
