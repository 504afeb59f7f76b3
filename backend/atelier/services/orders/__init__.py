"""Order lifecycle service, repository and status rules."""
