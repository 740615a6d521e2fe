# =============================================================================
# UI Module
# =============================================================================
# Textual-based user interface for ectt.
#
# Structure:
#   - screens/: Full-screen views (inbox, reading, compose)
#   - widgets/: Reusable UI components (message list, message preview)
# =============================================================================

from ectt.ui.screens.compose import ComposeScreen
from ectt.ui.screens.inbox import InboxScreen
from ectt.ui.screens.reading import ReadingScreen
from ectt.ui.widgets.message_list import MessageList
from ectt.ui.widgets.message_preview import MessagePreview

__all__ = [
    "InboxScreen",
    "ReadingScreen",
    "ComposeScreen",
    "MessageList",
    "MessagePreview",
]
