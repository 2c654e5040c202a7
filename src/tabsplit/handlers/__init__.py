from tabsplit.handlers.tabs import tabs_router

__all__ = ["tabs_router"]
