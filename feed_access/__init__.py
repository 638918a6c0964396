"""Feed access layer: cached, paginated reads and invalidating writes over a content service."""
