"""HTTP middleware: structured logging, error handling and metrics."""
