"""
GPI Document Hub - Routes Package

API routers for the folder conversion service.
"""

from .library_conversion import router as library_conversion_router, set_dependencies as set_library_conversion_deps

__all__ = [
    'library_conversion_router', 'set_library_conversion_deps',
]
