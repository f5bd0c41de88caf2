"""Remote gateway: httpx transport, auth session, wire schemas and mapping."""
