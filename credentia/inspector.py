"""Cross-type listing of credentials views for a principal."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from credentia.security import AccessControlled, Authorization, PermissionEvaluator, Principal
from credentia.sources import CredentialsNavigator, DefinitionSource
from credentia.views import CredentialsErrorDetail, CredentialsView, ErrorCode, Status

logger = logging.getLogger(__name__)


class CredentialsInspector:
    """Lists views from every navigator the principal may see.

    Valid views of access-controlled specs the principal cannot WRITE are
    dropped. A valid view whose name was already listed is kept but marked
    invalid as a duplicate; invalid views pass through untouched.
    """

    def __init__(
        self, sources: Iterable[DefinitionSource], permission_evaluator: PermissionEvaluator
    ) -> None:
        self._navigators = [s for s in sources if isinstance(s, CredentialsNavigator)]
        self._evaluator = permission_evaluator

    @property
    def navigators(self) -> list[CredentialsNavigator]:
        return list(self._navigators)

    def list_credentials_views(self, principal: Principal | None) -> list[CredentialsView]:
        valid_names: set[str] = set()
        views: list[CredentialsView] = []
        for navigator in self._navigators:
            for view in navigator.list_credentials_views():
                if view.status.valid:
                    spec = view.spec
                    if isinstance(spec, AccessControlled) and not self._evaluator.has_permission(
                        principal, spec, Authorization.WRITE
                    ):
                        continue
                    name = view.metadata.name
                    if name in valid_names:
                        logger.debug("Duplicate account name in views: %s", name)
                        view = view.model_copy(
                            update={
                                "status": Status(
                                    valid=False,
                                    errors=[
                                        CredentialsErrorDetail(
                                            code=ErrorCode.DUPLICATE_NAME,
                                            message="Duplicate account name",
                                            field="name",
                                        )
                                    ],
                                )
                            }
                        )
                    else:
                        valid_names.add(name)
                views.append(view)
        return views
