"""REST routers for ListUp."""
