"""Infrastructure helpers: logging and session storage."""
