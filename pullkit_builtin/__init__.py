"""Built-in acquisition engines for npm packages and container images."""
