"""Customer and operator notifications for order lifecycle events."""
