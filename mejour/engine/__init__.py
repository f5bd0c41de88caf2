"""Pure in-memory sync engine: codec, geo, place index, post cache, scopes."""
