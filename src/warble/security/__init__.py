"""Security subsystems: configuration, CSRF tokens, validation, auth, audit."""
