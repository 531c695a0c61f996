"""Core algorithms: alignment, clustering, significance and family maintenance."""
