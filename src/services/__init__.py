"""Services that wire the search components and bring the database up."""

from src.services.bootstrap import SearchServices, build_services, initialize_database

__all__ = ["SearchServices", "build_services", "initialize_database"]
