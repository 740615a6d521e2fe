# =============================================================================
# UI Screens
# =============================================================================
# Full-screen views for the application. The app shows one screen at a
# time, and screens are pushed/popped like a stack:
#   - InboxScreen: The default view, the paginated inbox table
#   - ReadingScreen: Full-screen message reading
#   - ComposeScreen: Writing a new message
# =============================================================================

from ectt.ui.screens.compose import ComposeScreen
from ectt.ui.screens.inbox import InboxScreen
from ectt.ui.screens.reading import ReadingScreen

__all__ = ["InboxScreen", "ReadingScreen", "ComposeScreen"]
