from .routes import customer_bp

__all__ = ["customer_bp"]
