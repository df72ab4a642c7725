"""BaseService — foundation for all quire services.

Every service receives a :class:`Workspace` at construction time. The
workspace provides the file store, the index and the entity contexts.
Services own their commit boundaries.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from quire.services.result import ServiceError, ServiceResult

if TYPE_CHECKING:
    from quire.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class EditorService(BaseService):
            def save_content(self, note_id: str, body: str) -> ServiceResult:
                note = self._workspace.context.get_note(note_id)
                ...
    """

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    @staticmethod
    def _failure(
        op: str,
        code: str,
        message: str,
        *,
        warnings: list[str] | None = None,
        **detail: object,
    ) -> ServiceResult:
        """Build a failed :class:`ServiceResult`."""
        return ServiceResult(
            ok=False,
            op=op,
            warnings=warnings or [],
            error=ServiceError(code=code, message=message, detail=dict(detail)),
        )
