"""LastCall SMS - multi-tenant SMS marketing backend for bars"""

__version__ = "1.0.0"
