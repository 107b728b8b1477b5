"""Tab navigation and progressive save.

Forward navigation is gated on saves: a user reaches a tab only after the
tabs before it are saved, tracked by the submission-owned
``current_tab_index``. Backward navigation is free, and post-approval
(output) tabs can always be previewed but only printed once APPROVED.
"""

from typing import Optional

from formflow.definitions import FlowDefinition, ScreenDefinition
from formflow.submission import Submission
from formflow.types import SubmissionStatus


def can_access_tab(
    submission: Submission,
    flow: FlowDefinition,
    tab_index: int,
    editing_index: Optional[int] = None,
) -> bool:
    """Whether the user may open ``tab_index``.

    ``editing_index`` is the tab currently being edited; it defaults to the
    next unsaved tab.
    """
    if not 0 <= tab_index < len(flow):
        return False
    if flow.screen_at(tab_index).is_post_approval:
        return True
    if editing_index is None:
        editing_index = submission.current_tab_index + 1
    return tab_index <= submission.current_tab_index or tab_index == editing_index


def is_tab_saved(submission: Submission, tab_index: int) -> bool:
    return tab_index <= submission.current_tab_index


def advance_pointer(submission: Submission, tab_index: int) -> int:
    """New save pointer after saving ``tab_index``; never moves backward."""
    return max(submission.current_tab_index, tab_index)


def last_required_tab_index(flow: FlowDefinition) -> int:
    """Index of the last tab that is not a post-approval screen, or -1."""
    last = -1
    for index, fs in enumerate(flow.flow_screens):
        if not fs.screen.is_post_approval:
            last = index
    return last


def can_preview(screen: ScreenDefinition) -> bool:
    return True


def printable(submission: Submission, screen: ScreenDefinition) -> bool:
    """Post-approval screens print only once the submission is fully approved."""
    return screen.is_post_approval and submission.status == SubmissionStatus.APPROVED


__all__ = [
    "can_access_tab",
    "is_tab_saved",
    "advance_pointer",
    "last_required_tab_index",
    "can_preview",
    "printable",
]
