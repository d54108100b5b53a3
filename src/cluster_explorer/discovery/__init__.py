"""Resource discovery: selectors, caching, pagination and fan-out."""
