"""
Adapters package for the edge node.

HTTP client wrappers for external collaborators (origin servers, fleet
peers, the geolocation API). Each adapter maps transport failures onto the
shared error type its callers expect.

Keep adapters thin and side-effect free outside of explicit calls.
"""
