"""Academy Auth - WebAuthn relying-party authentication core."""
