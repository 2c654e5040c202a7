"""Per-chat pointers to the tab a chat is currently working on."""

from __future__ import annotations

from typing import Optional


class ChatStateManager:
    def __init__(self) -> None:
        self._current_tab: dict[int, str] = {}

    def set_current_tab(self, chat_id: int, transaction_id: str) -> None:
        self._current_tab[chat_id] = transaction_id

    def get_current_tab(self, chat_id: int) -> Optional[str]:
        return self._current_tab.get(chat_id)

    def clear_current_tab(self, chat_id: int) -> None:
        self._current_tab.pop(chat_id, None)


state = ChatStateManager()
