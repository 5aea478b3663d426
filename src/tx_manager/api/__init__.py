"""HTTP status API — submission, status, cancellation and live events."""
