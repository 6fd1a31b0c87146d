"""AWS identity, session and client handling."""
