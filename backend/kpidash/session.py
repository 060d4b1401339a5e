"""
Dashboard Session
=================

Wires one hosted client to a store and a realtime manager: the Python side
of the dashboard app shell.

WHAT:
    - load(): profile, KPIs and integrations into the store
    - start_realtime()/stop_realtime(): keep the store current from the
      change feed
    - submit_kpi()/edit_kpi()/remove_kpi(): validated writes that go through
      the data layer, then land in the store
    - sign-out (from any caller of client.auth) stops realtime

USAGE:
    session = DashboardSession(client)
    session.load()
    session.start_realtime()
    result = session.submit_kpi({"name": "Revenue", "value": "100", ...})
    if not result.ok:
        show(result.error_map())
    ...
    session.close()

REFERENCES:
    - kpidash/store.py, kpidash/realtime.py, kpidash/queries.py
    - kpidash/validation.py (form rules)
"""

import logging
from typing import Any, Mapping, Optional

from . import schemas
from .exceptions import BackendError, UnauthenticatedError
from .hosted.auth import SIGNED_OUT
from .hosted.channels import RealtimePayload
from .hosted.client import HostedClient
from .queries import IntegrationQueries, KpiQueries, ProfileQueries
from .realtime import RealtimeManager
from .store import AppStore
from .telemetry import clear_user_context
from .utils.errors import parse_backend_error
from .utils.integrations import enhance_integration_data
from .validation import (
    ValidationResult,
    parse_tags,
    validate_kpi_form,
    validate_profile_form,
)

logger = logging.getLogger(__name__)


class DashboardSession:

    def __init__(
        self,
        client: HostedClient,
        store: Optional[AppStore] = None,
        realtime: Optional[RealtimeManager] = None,
    ):
        self.client = client
        self.store = store or AppStore()
        self.realtime = realtime or RealtimeManager(client)
        self.kpis = KpiQueries(client)
        self.integrations = IntegrationQueries(client)
        self.profiles = ProfileQueries(client)
        self._unlisten = client.auth.on_auth_state_change(self._on_auth_event)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Fetch everything the dashboard shows. Returns False (with store.error set) on backend failure."""
        self.store.set_loading(True)
        self.store.set_error(None)
        try:
            profile = self.profiles.get_profile()
            if profile is not None:
                self.store.update_user(
                    id=profile.user_id,
                    first_name=profile.first_name,
                    last_name=profile.last_name,
                    email=profile.email,
                    avatar_url=profile.avatar_url,
                )
            self.store.load_kpis(self.kpis.list())
            self.store.set_integrations([enhance_integration_data(row) for row in self.integrations.list()])
        except BackendError as exc:
            logger.warning("[SESSION] Load failed: %s", exc.message)
            self.store.set_error(parse_backend_error(exc))
            return False
        finally:
            self.store.set_loading(False)
        return True

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    def start_realtime(self) -> None:
        user = self.client.auth.get_user()
        if user is None:
            raise UnauthenticatedError()

        self.realtime.subscribe_to_kpi_data(
            str(user.id),
            on_insert=self._apply_kpi,
            on_update=self._apply_kpi,
            on_delete=self._drop_kpi,
        )
        self.realtime.subscribe_to_integrations(
            str(user.id),
            on_insert=self._apply_integration,
            on_update=self._apply_integration,
            on_delete=self._drop_integration,
        )

    def stop_realtime(self) -> None:
        self.realtime.unsubscribe_all()

    def _apply_kpi(self, payload: RealtimePayload) -> None:
        self.store.merge_kpi(schemas.KpiData.model_validate(payload.new))

    def _drop_kpi(self, payload: RealtimePayload) -> None:
        self.store.remove_kpi(str(payload.old.get("id")))

    def _apply_integration(self, payload: RealtimePayload) -> None:
        view = enhance_integration_data(payload.new)
        current = [row for row in self.store.integrations if row.id != view.id]
        self.store.set_integrations([view] + current)

    def _drop_integration(self, payload: RealtimePayload) -> None:
        removed = str(payload.old.get("id"))
        self.store.set_integrations([row for row in self.store.integrations if row.id != removed])

    def _on_auth_event(self, event: str, _session) -> None:
        if event == SIGNED_OUT:
            logger.info("[SESSION] Signed out, closing subscriptions")
            self.stop_realtime()
            clear_user_context()

    # ------------------------------------------------------------------
    # KPI actions
    # ------------------------------------------------------------------

    def submit_kpi(self, form: Mapping[str, Any]) -> ValidationResult:
        """Validate and create a KPI. Invalid forms never reach the backend."""
        result = validate_kpi_form(form)
        if not result.ok:
            return result

        row = self._write(lambda: self.kpis.create(result.value))
        kpi = self.store.merge_kpi(row)
        tags = parse_tags(form.get("tags"))
        if tags:
            self.store.update_kpi(kpi.id, tags=tags)
        return result

    def edit_kpi(self, kpi_id: str, form: Mapping[str, Any]) -> ValidationResult:
        result = validate_kpi_form(form)
        if not result.ok:
            return result

        row = self._write(lambda: self.kpis.update(kpi_id, result.value))
        self.store.merge_kpi(row)
        if "tags" in form:
            self.store.update_kpi(kpi_id, tags=parse_tags(form.get("tags")))
        return result

    def remove_kpi(self, kpi_id: str) -> None:
        self._write(lambda: self.kpis.delete(kpi_id))
        self.store.delete_kpi(kpi_id)

    def update_profile(self, form: Mapping[str, Any]) -> ValidationResult:
        result = validate_profile_form(form)
        if not result.ok:
            return result

        profile = self._write(lambda: self.profiles.update_profile(result.value))
        self.store.update_user(
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            avatar_url=profile.avatar_url,
        )
        return result

    def _write(self, operation):
        """Run a data-layer write, recording a readable error in the store before re-raising."""
        try:
            outcome = operation()
        except BackendError as exc:
            self.store.set_error(parse_backend_error(exc))
            raise
        self.store.set_error(None)
        return outcome

    def close(self) -> None:
        self.stop_realtime()
        self._unlisten()
