"""
homarr_client.py
- Typed wrapper around Homarr's tRPC API (credentials, onboarding, boards, apps).
- Every call:
    - sends the current bearer credential
    - retries connection failures and 502/503/504 with exponential backoff (tenacity)
    - maps HTTP errors onto the ApiError family without retrying them
"""

import json
from dataclasses import dataclass, field

import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF,
    MAX_ONBOARDING_STEPS,
    ONBOARDING_FINISHED,
    ONBOARDING_STEPS,
    TRANSIENT_HTTP_STATUSES,
)
from core.errors import (
    ApiError,
    AuthFailure,
    Conflict,
    ConnectionFailure,
    NotFound,
    SetupError,
    ValidationFailure,
)

DEFAULT_ICON_URL = "https://cdn.jsdelivr.net/gh/homarr-labs/dashboard-icons/svg/docker.svg"

ERROR_CLASSES = {
    400: ValidationFailure,
    401: AuthFailure,
    403: AuthFailure,
    404: NotFound,
    409: Conflict,
    422: ValidationFailure,
}


@dataclass
class OnboardingStatus:
    complete: bool
    current: str
    pending_steps: list = field(default_factory=list)


def credential_ref(api_key):
    """Homarr API keys look like "<id>.<secret>"; the id is what apiKeys.delete expects."""
    return api_key.split(".", 1)[0]


class HomarrClient:
    def __init__(
        self,
        base_url,
        credential=None,
        timeout=DEFAULT_REQUEST_TIMEOUT,
        retry_attempts=DEFAULT_RETRY_ATTEMPTS,
        retry_backoff=DEFAULT_RETRY_BACKOFF,
        session=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credential = credential
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config, credential=None):
        return cls(
            config.homarr_url,
            credential=credential,
            timeout=config.request_timeout,
            retry_attempts=config.retry_attempts,
            retry_backoff=config.retry_backoff,
        )

    # --- Transport ---
    def _log_retry(self, retry_state):
        exc = retry_state.outcome.exception()
        logger.warning(f"[homarr] Attempt {retry_state.attempt_number}/{self.retry_attempts} failed: {exc}. Retrying...")

    def _retrying(self):
        return Retrying(
            reraise=True,
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=self.retry_backoff * 10),
            retry=retry_if_exception_type(ConnectionFailure),
            before_sleep=self._log_retry,
        )

    def _send(self, method, procedure, payload, headers):
        url = f"{self.base_url}/api/trpc/{procedure}"
        try:
            if method == "GET":
                params = {"input": json.dumps({"json": payload})} if payload is not None else None
                response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            else:
                response = self.session.post(url, json={"json": payload or {}}, headers=headers, timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise ConnectionFailure(f"{procedure}: dashboard unreachable at {self.base_url}: {e}")

        if response.status_code in TRANSIENT_HTTP_STATUSES:
            raise ConnectionFailure(f"{procedure}: dashboard not ready (HTTP {response.status_code})")
        return response

    @staticmethod
    def _error_message(response):
        try:
            body = response.json()
            return body["error"]["json"]["message"]
        except (ValueError, KeyError, TypeError):
            return (response.text or "").strip()[:200] or "no error details"

    def _call(self, method, procedure, payload=None, credential=None):
        """
        Invoke a tRPC procedure and return its `result.data.json` payload.

        Raises:
            ConnectionFailure: Dashboard unreachable after all retries.
            ApiError: Dashboard rejected the call (subclass depends on HTTP status).
        """
        headers = {"Accept": "application/json"}
        token = credential or self.credential
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = None
        for attempt in self._retrying():
            with attempt:
                response = self._send(method, procedure, payload, headers)

        status = response.status_code
        if not 200 <= status < 300:
            error_class = ERROR_CLASSES.get(status, ApiError)
            raise error_class(self._error_message(response), status_code=status, procedure=procedure)

        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            raise ApiError("response is not JSON", status_code=status, procedure=procedure)
        result = body.get("result") if isinstance(body, dict) else None
        if not isinstance(result, dict) or not isinstance(result.get("data") or {}, dict):
            raise ApiError("response has no tRPC result", status_code=status, procedure=procedure)
        return (result.get("data") or {}).get("json")

    @staticmethod
    def _expect(data, kind, procedure):
        """Return `data` if it has the expected shape, else raise ApiError naming the procedure."""
        if not isinstance(data, kind):
            raise ApiError(
                f"unexpected response payload ({type(data).__name__})",
                status_code=200,
                procedure=procedure,
            )
        return data

    @classmethod
    def _records(cls, data, procedure):
        """A list of mappings, e.g. app.all or a board's items/sections/layouts."""
        records = cls._expect(data, list, procedure)
        for record in records:
            cls._expect(record, dict, procedure)
        return records

    # --- Credentials ---
    def mint_permanent_credential(self, bootstrap_credential):
        """
        Create a new API key while authenticated with the bootstrap key.

        Returns:
            str: The new permanent API key.
        """
        data = self._call("POST", "apiKeys.create", {}, credential=bootstrap_credential)
        key = data.get("apiKey") if isinstance(data, dict) else None
        if not key:
            raise ApiError("apiKeys.create returned no key", status_code=200, procedure="apiKeys.create")
        return key

    def delete_credential(self, ref):
        """
        Delete an API key by reference.

        Returns:
            bool: True if deleted, False if the dashboard no longer knows the key.
        """
        try:
            self._call("POST", "apiKeys.delete", {"apiKeyId": ref})
        except NotFound:
            return False
        return True

    # --- Onboarding ---
    def get_onboarding_status(self):
        data = self._expect(self._call("GET", "onboard.currentStep") or {}, dict, "onboard.currentStep")
        current = data.get("current") or ONBOARDING_STEPS[0]
        if current in ONBOARDING_STEPS:
            pending = ONBOARDING_STEPS[ONBOARDING_STEPS.index(current):-1]
        else:
            pending = [current]
        return OnboardingStatus(complete=current == ONBOARDING_FINISHED, current=current, pending_steps=pending)

    def advance_onboarding_step(self):
        self._call("POST", "onboard.nextStep", {})

    def create_initial_user(self, username, password):
        self._call("POST", "user.initUser", {
            "username": username,
            "password": password,
            "confirmPassword": password,
        })

    def init_server_settings(self, analytics, crawling):
        self._call("POST", "serverSettings.initSettings", {
            "analytics": {
                "enableGeneral": analytics.get("enable_general", False),
                "enableWidgetData": analytics.get("enable_widget_data", False),
                "enableIntegrationData": analytics.get("enable_integration_data", False),
                "enableUserData": analytics.get("enable_user_data", False),
            },
            "crawlingAndIndexing": {
                "noIndex": crawling.get("no_index", True),
                "noFollow": crawling.get("no_follow", True),
                "noTranslate": crawling.get("no_translate", True),
                "noSiteLinksSearchBox": crawling.get("no_sitelinks_search_box", True),
            },
        })

    def complete_onboarding(self, settings):
        """
        Step through onboarding until Homarr reports "finish".

        Args:
            settings (dict): admin_username, admin_password, analytics, crawling.
        """
        for _ in range(MAX_ONBOARDING_STEPS):
            status = self.get_onboarding_status()
            logger.info(f"[homarr] Onboarding step: {status.current}")

            if status.complete:
                return
            if status.current == "user":
                self.create_initial_user(settings["admin_username"], settings["admin_password"])
            elif status.current == "settings":
                self.init_server_settings(settings.get("analytics", {}), settings.get("crawling", {}))
            else:
                self.advance_onboarding_step()

        raise SetupError(f"Onboarding did not finish after {MAX_ONBOARDING_STEPS} steps")

    # --- Boards ---
    def get_board_by_name(self, name):
        try:
            board = self._call("GET", "board.getBoardByName", {"name": name})
        except NotFound:
            return None
        if board is None:
            return None
        board = self._expect(board, dict, "board.getBoardByName")
        if not board.get("id"):
            raise ApiError("board has no id", status_code=200, procedure="board.getBoardByName")
        return board

    def get_board(self, board_id):
        return self._expect(self._call("GET", "board.getBoardById", {"id": board_id}), dict, "board.getBoardById")

    def create_board(self, definition):
        data = self._call("POST", "board.createBoard", {
            "name": definition["name"],
            "columnCount": definition.get("column_count", 10),
            "isPublic": definition.get("is_public", True),
        })
        board_id = self._expect(data, dict, "board.createBoard").get("boardId")
        if not board_id:
            raise ApiError("board.createBoard returned no board id", status_code=200, procedure="board.createBoard")
        return board_id

    def set_home_board(self, board_id):
        self._call("POST", "board.setHomeBoard", {"id": board_id})

    def set_color_scheme(self, scheme):
        self._call("POST", "user.changeColorScheme", {"colorScheme": scheme})

    def upsert_board(self, definition):
        """
        Create the board if no board with that name exists, then make it the home board.

        Args:
            definition (dict): name, column_count, is_public, optional color_scheme.

        Returns:
            str: Board id.
        """
        board = self.get_board_by_name(definition["name"])
        if board:
            board_id = board["id"]
            logger.info(f"[homarr] Board '{definition['name']}' already exists ({board_id})")
        else:
            logger.info(f"[homarr] Creating board '{definition['name']}'")
            board_id = self.create_board(definition)

        self.set_home_board(board_id)
        if definition.get("color_scheme"):
            self.set_color_scheme(definition["color_scheme"])
        return board_id

    # --- Apps ---
    def create_app(self, descriptor):
        """
        Create an app tile.

        Returns:
            str: Dashboard app id.

        Raises:
            Conflict: If the dashboard already has this app.
            ValidationFailure: If the dashboard rejects a field.
        """
        data = self._call("POST", "app.create", {
            "name": descriptor.name,
            "description": descriptor.description or "",
            "iconUrl": descriptor.icon_url or DEFAULT_ICON_URL,
            "href": descriptor.url,
            "pingUrl": descriptor.ping_url,
        })
        data = self._expect(data, dict, "app.create")
        app_id = data.get("appId") or data.get("id")
        if not app_id:
            raise ApiError("app.create returned no app id", status_code=200, procedure="app.create")
        return app_id

    def list_apps(self):
        return self._records(self._call("GET", "app.all") or [], "app.all")

    def find_app_id(self, name, url):
        for app in self.list_apps():
            if app.get("name") == name and app.get("href") == url:
                return app.get("id")
        return None

    def attach_app_to_board(self, app_id, board_id, width=1, height=1):
        """
        Add an app item to a board, keeping the items already on it.

        Returns:
            bool: True if added, False if the board already shows this app.
        """
        board = self.get_board(board_id)
        items = list(self._records(board.get("items") or [], "board.getBoardById"))
        if any(item.get("appId") == app_id for item in items):
            logger.debug(f"[homarr] App {app_id} already on board {board_id}")
            return False

        sections = self._records(board.get("sections") or [], "board.getBoardById")
        layouts = self._records(board.get("layouts") or [], "board.getBoardById")
        section_id = sections[0].get("id", "") if sections else ""
        layout_id = layouts[0].get("id", "") if layouts else ""

        y_offset = 0
        for item in items:
            for placement in self._records(item.get("layouts") or [], "board.getBoardById"):
                y_offset = max(y_offset, (placement.get("yOffset") or 0) + (placement.get("height") or 1))

        items.append({
            "id": f"app-{app_id}",
            "kind": "app",
            "appId": app_id,
            "options": {"appId": app_id},
            "layouts": [{
                "layoutId": layout_id,
                "sectionId": section_id,
                "width": width,
                "height": height,
                "xOffset": 0,
                "yOffset": y_offset,
            }],
            "integrationIds": [],
            "advancedOptions": {"customCssClasses": []},
        })

        self._call("POST", "board.saveBoard", {
            "id": board_id,
            "sections": sections,
            "items": items,
            "integrations": board.get("integrations") or [],
        })
        return True

    # --- Federated Login ---
    def save_federated_login(self, settings):
        self._call("POST", "serverSettings.saveSettings", {"settingsKey": "authentication", "value": settings})
