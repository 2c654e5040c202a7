from tabsplit.api.service import TransactionAPI, get_global_api, set_global_api

__all__ = ["TransactionAPI", "get_global_api", "set_global_api"]
