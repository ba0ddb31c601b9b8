"""HTTP routers, dependencies and middleware."""
