"""Bearer tokens, scopes, browser sessions and credential encryption."""
