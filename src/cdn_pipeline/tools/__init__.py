from .provision import ensure_tools, extract_zip
from .releases import ReleaseClient

__all__ = ["ensure_tools", "extract_zip", "ReleaseClient"]
