"""SharePoint REST API client, response parsing and collaboration operations."""
