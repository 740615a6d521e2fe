# =============================================================================
# UI Widgets
# =============================================================================
# Building blocks used by the screens:
#   - MessageList: The inbox table
#   - MessagePreview: A single message's headers and body
# =============================================================================

from ectt.ui.widgets.message_list import MessageList
from ectt.ui.widgets.message_preview import MessagePreview

__all__ = ["MessageList", "MessagePreview"]
