"""Authentication providers and access-token handling."""
