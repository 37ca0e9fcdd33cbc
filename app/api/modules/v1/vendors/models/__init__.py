from .vendor_model import Vendor

__all__ = ["Vendor"]
