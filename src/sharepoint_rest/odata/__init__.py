"""URL escaping and OData/search query building."""
