"""Status API route modules."""
