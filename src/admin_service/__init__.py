"""Admin service package.

Import ``admin_service.app`` explicitly where the Flask app is required.
"""

__all__ = []
