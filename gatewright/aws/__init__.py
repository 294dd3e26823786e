from .site import Site, SiteResources

__all__ = ["Site", "SiteResources"]
