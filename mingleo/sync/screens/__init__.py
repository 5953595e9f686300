# =============================================================================
# File: mingleo/sync/screens/__init__.py
# Description: Screen controllers (snapshot + subscriptions + view)
# =============================================================================

from mingleo.sync.screens.base_screen import BaseScreen, ScreenDependencies, ScreenStatus
from mingleo.sync.screens.chat_list_screen import ChatListScreen
from mingleo.sync.screens.chat_thread_screen import Attachment, ChatThreadScreen

__all__ = [
    "Attachment",
    "BaseScreen",
    "ChatListScreen",
    "ChatThreadScreen",
    "ScreenDependencies",
    "ScreenStatus",
]
