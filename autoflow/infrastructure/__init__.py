"""Infrastructure: storage backends, engine services and external clients."""
