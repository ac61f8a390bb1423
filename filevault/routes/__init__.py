from .files import files_bp
from .shares import shares_bp

__all__ = ['files_bp', 'shares_bp']
