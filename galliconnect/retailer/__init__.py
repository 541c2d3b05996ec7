from .routes import retailer_bp

__all__ = ["retailer_bp"]
