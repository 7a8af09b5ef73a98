"""HTTP request execution on top of requests."""
