"""HTTP middleware: error handling, request context."""
