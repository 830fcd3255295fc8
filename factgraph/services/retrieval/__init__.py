"""Read paths: vector and timeline search, graph traversal, facts, citations,
entity search and document listing.
"""
