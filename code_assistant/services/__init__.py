"""Services module - client-side session and synchronization logic."""
