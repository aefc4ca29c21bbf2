"""Infrastructure: configuration-backed clients, security helpers and errors."""
