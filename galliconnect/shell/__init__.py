from .routes import shell_bp

__all__ = ['shell_bp']
